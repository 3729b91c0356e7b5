"""
Firebase service for Django - Firestore integration for payments and balances.

Firestore Collections:
- transactions/{reference}: Deposit/withdrawal records with payment_status history
- appuser/{id}: Customer profile (email, firstName, lastName)
- owner/{email}: Cinema owner (totalBalance, hasWithdrawn)
- ownerAmount/{id}: Deposit balance per owner (movieEmail, totalAmount)
"""
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import firebase_admin
from django.utils import timezone
from firebase_admin import credentials, firestore
from google.api_core.exceptions import AlreadyExists

from .constants import STATUS_FAILED, UNSETTLED_STATUSES
from .utils import status_entry

logger = logging.getLogger("cinema")

# Firebase Admin initialization
_firebase_app = None
_firestore_client = None
_firebase_init_attempted = False


def _load_credentials():
    service_account_json = os.environ.get("FIREBASE_SERVICE_ACCOUNT")
    service_account_path = os.environ.get("FIREBASE_SERVICE_ACCOUNT_PATH")

    if service_account_json:
        try:
            cred = credentials.Certificate(json.loads(service_account_json))
            logger.info("Using FIREBASE_SERVICE_ACCOUNT env var")
            return cred
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Invalid FIREBASE_SERVICE_ACCOUNT JSON: {e}")
            return None
    if service_account_path and os.path.exists(service_account_path):
        logger.info(f"Using service account from {service_account_path}")
        return credentials.Certificate(service_account_path)
    return None


def get_firebase_app():
    """Get or initialize Firebase Admin app"""
    global _firebase_app, _firebase_init_attempted

    if _firebase_app is not None:
        return _firebase_app

    if _firebase_init_attempted:
        # Already tried and failed
        return None

    _firebase_init_attempted = True

    use_emulator = os.environ.get("FIREBASE_USE_EMULATOR", "false").lower() == "true"
    project_id = os.environ.get("FIREBASE_PROJECT_ID")

    logger.info(f"Firebase init: use_emulator={use_emulator}, project_id={project_id}")

    if use_emulator:
        # FIRESTORE_EMULATOR_HOST must be set before the client is created
        firestore_host = os.environ.get("FIRESTORE_EMULATOR_HOST", "localhost:8080")
        os.environ["FIRESTORE_EMULATOR_HOST"] = firestore_host
        options = {"projectId": project_id or "demo-cinema"}
        cred = None
    else:
        cred = _load_credentials()
        if cred is None:
            logger.warning("Firebase credentials not found - Firestore operations will fail")
            return None
        options = {"projectId": project_id} if project_id else None

    try:
        _firebase_app = firebase_admin.initialize_app(cred, options=options)
        logger.info(f"Firebase Admin initialized ({'emulator' if use_emulator else 'production'})")
    except ValueError:
        # Already initialized elsewhere in the process
        try:
            _firebase_app = firebase_admin.get_app()
        except ValueError as e:
            logger.error(f"Firebase init failed: {e}")
            return None

    return _firebase_app


def get_firestore():
    """Get Firestore client"""
    global _firestore_client

    if _firestore_client is not None:
        return _firestore_client

    app = get_firebase_app()
    if app is None:
        return None

    try:
        _firestore_client = firestore.client(app)
        return _firestore_client
    except Exception as e:
        logger.error(f"Failed to get Firestore client: {e}")
        return None


class FirestoreService:
    """Service class for Firestore operations"""

    # Collection names
    TRANSACTIONS_COLLECTION = "transactions"
    APP_USERS_COLLECTION = "appuser"
    OWNERS_COLLECTION = "owner"
    OWNER_BALANCES_COLLECTION = "ownerAmount"

    # Transaction creation outcomes
    TRANSACTION_CREATED = "created"
    TRANSACTION_DUPLICATE = "duplicate"

    # Withdrawal reservation outcomes
    WITHDRAWAL_RESERVED = "reserved"
    WITHDRAWAL_OWNER_NOT_FOUND = "owner_not_found"
    WITHDRAWAL_ALREADY_WITHDRAWN = "already_withdrawn"
    WITHDRAWAL_INSUFFICIENT_FUNDS = "insufficient_funds"

    def __init__(self):
        self._db = None

    @property
    def db(self):
        """Lazy initialization of Firestore client"""
        if self._db is None:
            self._db = get_firestore()
        return self._db

    def is_available(self) -> bool:
        """Check if Firestore is available"""
        return self.db is not None

    def _transactions(self):
        return self.db.collection(self.TRANSACTIONS_COLLECTION)

    # =========================================================================
    # App Users
    # =========================================================================

    def find_app_user(self, email: str) -> Optional[Dict[str, Any]]:
        """
        Look up a customer profile by email.

        Returns:
            Profile dict with "exists": True, {"exists": False} if no user
            matches, or None on Firestore error.
        """
        if not self.db:
            logger.warning("Firestore not available")
            return None

        try:
            query = (
                self.db.collection(self.APP_USERS_COLLECTION)
                .where("email", "==", email)
                .limit(1)
            )
            docs = list(query.stream())
            if not docs:
                logger.info(f"App user not found: {email}")
                return {"exists": False}
            data = docs[0].to_dict() or {}
            data["exists"] = True
            return data
        except Exception as e:
            logger.error(f"Error looking up app user {email}: {e}")
            return None

    # =========================================================================
    # Transaction Records
    # =========================================================================

    def find_transaction(self, reference: str) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Find a transaction by reference.

        Checks the document keyed by the reference first, then falls back to a
        query on the `reference` field for records created with generated IDs.

        Returns:
            (doc_id, data) or None if not found or on error.
        """
        if not self.db:
            return None

        try:
            doc = self._transactions().document(reference).get()
            if doc.exists:
                return doc.id, doc.to_dict()

            query = self._transactions().where("reference", "==", reference).limit(1)
            docs = list(query.stream())
            if docs:
                return docs[0].id, docs[0].to_dict()
            return None
        except Exception as e:
            logger.error(f"Error finding transaction {reference}: {e}")
            return None

    def reference_exists(self, reference: str) -> Optional[bool]:
        """
        Early duplicate check, including legacy auto-ID documents carrying
        this reference. create_transaction is the authoritative guard.

        Returns True/False, or None on Firestore error.
        """
        if not self.db:
            return None

        try:
            if self._transactions().document(reference).get().exists:
                return True
            query = self._transactions().where("reference", "==", reference).limit(1)
            return bool(list(query.stream()))
        except Exception as e:
            logger.error(f"Error checking reference {reference}: {e}")
            return None

    def create_transaction(self, reference: str, record: Dict[str, Any]) -> Optional[str]:
        """
        Create the transaction document at transactions/{reference}.

        Returns:
            TRANSACTION_CREATED, TRANSACTION_DUPLICATE if the document already
            exists, or None on error.
        """
        if not self.db:
            return None

        try:
            self._transactions().document(reference).create(record)
            logger.info(f"Created transaction record: {reference}")
            return self.TRANSACTION_CREATED
        except AlreadyExists:
            logger.warning(f"Transaction record already exists: {reference}")
            return self.TRANSACTION_DUPLICATE
        except Exception as e:
            logger.error(f"Error creating transaction {reference}: {e}")
            return None

    def update_transaction(self, doc_id: str, fields: Dict[str, Any]) -> bool:
        if not self.db:
            return False

        try:
            self._transactions().document(doc_id).update(fields)
            return True
        except Exception as e:
            logger.error(f"Error updating transaction {doc_id}: {e}")
            return False

    def append_status(
        self,
        doc_id: str,
        status: str,
        detail: str,
        **fields
    ) -> bool:
        """
        Set the transaction status and append an entry to its history.

        Extra keyword arguments are written alongside the status fields.
        """
        update_data = {
            "status": status,
            "payment_status.current": status,
            "payment_status.history": firestore.ArrayUnion([status_entry(status, detail)]),
            "updated_at": timezone.now(),
        }
        update_data.update(fields)
        return self.update_transaction(doc_id, update_data)

    def mark_transaction_failed(self, reference: str, detail: str, record: Optional[Dict[str, Any]] = None) -> bool:
        """
        Record a failed payment attempt.

        Updates the existing document when one was already created, otherwise
        stores `record` as a new failed document.
        """
        if not self.db:
            return False

        try:
            doc_ref = self._transactions().document(reference)
            if doc_ref.get().exists:
                return self.append_status(reference, STATUS_FAILED, detail, error=detail)

            failed = dict(record or {})
            failed.update({
                "status": STATUS_FAILED,
                "reference": reference,
                "error": detail,
                "date": timezone.now().isoformat(),
                "payment_status": {
                    "current": STATUS_FAILED,
                    "history": [status_entry(STATUS_FAILED, detail)],
                },
            })
            doc_ref.set(failed)
            return True
        except Exception as e:
            logger.error(f"Error recording failed transaction {reference}: {e}")
            return False

    def list_unsettled_transactions(self, cutoff_time: datetime) -> Optional[List[Tuple[str, Dict[str, Any]]]]:
        """
        List pending/processing transactions created at or before cutoff_time.

        Returns list of (doc_id, data), or None on error.
        """
        if not self.db:
            return None

        try:
            query = (
                self._transactions()
                .where("status", "in", list(UNSETTLED_STATUSES))
                .where("created_at", "<=", cutoff_time)
            )
            return [(doc.id, doc.to_dict()) for doc in query.stream()]
        except Exception as e:
            logger.error(f"Error listing unsettled transactions: {e}")
            return None

    def record_withdrawal(self, record: Dict[str, Any]) -> bool:
        if not self.db:
            return False

        try:
            self._transactions().add(record)
            return True
        except Exception as e:
            logger.error(f"Error recording withdrawal {record.get('reference')}: {e}")
            return False

    # =========================================================================
    # Balances
    # =========================================================================

    def reserve_balance_credit(self, doc_id: str):
        """
        Claim the one-time balance credit for a deposit (idempotency guard).

        Returns:
            True if claimed now,
            False if already claimed or the transaction is missing,
            None on error.
        """
        if not self.db:
            return None

        try:
            doc_ref = self._transactions().document(doc_id)

            @firestore.transactional
            def _txn(transaction):
                snapshot = doc_ref.get(transaction=transaction)
                if not snapshot.exists:
                    return False
                data = snapshot.to_dict() or {}
                if data.get("balanceCredited"):
                    return False
                transaction.update(doc_ref, {
                    "balanceCredited": True,
                    "balanceCreditedAt": timezone.now(),
                })
                return True

            return _txn(self.db.transaction())
        except Exception as e:
            logger.error(f"Error reserving balance credit for {doc_id}: {e}")
            return None

    def release_balance_credit(self, doc_id: str) -> bool:
        """Undo a credit claim whose balance update failed"""
        return self.update_transaction(doc_id, {
            "balanceCredited": False,
            "balanceCreditedAt": firestore.DELETE_FIELD,
        })

    def credit_owner_balance(self, email: str, amount: float) -> bool:
        """Add a confirmed deposit to the owner's ownerAmount balance"""
        if not self.db:
            return False

        try:
            collection = self.db.collection(self.OWNER_BALANCES_COLLECTION)
            docs = list(collection.where("movieEmail", "==", email).limit(1).stream())
            now = timezone.now()
            if docs:
                docs[0].reference.update({
                    "totalAmount": firestore.Increment(amount),
                    "updated_at": now,
                })
            else:
                collection.add({
                    "movieEmail": email,
                    "totalAmount": amount,
                    "created_at": now,
                    "updated_at": now,
                })
            logger.info(f"Credited {amount} to balance of {email}")
            return True
        except Exception as e:
            logger.error(f"Error crediting balance for {email}: {e}")
            return False

    def reserve_withdrawal(self, email: str, amount: float):
        """
        Deduct a withdrawal from owner/{email} inside a transaction.

        Returns:
            (outcome, balance) where outcome is one of the WITHDRAWAL_*
            constants and balance is the balance after (or at) the check,
            or None on error.
        """
        if not self.db:
            return None

        try:
            doc_ref = self.db.collection(self.OWNERS_COLLECTION).document(email)

            @firestore.transactional
            def _txn(transaction):
                snapshot = doc_ref.get(transaction=transaction)
                if not snapshot.exists:
                    return self.WITHDRAWAL_OWNER_NOT_FOUND, None
                data = snapshot.to_dict() or {}
                balance = data.get("totalBalance") or 0
                if data.get("hasWithdrawn"):
                    return self.WITHDRAWAL_ALREADY_WITHDRAWN, balance
                if balance < amount:
                    return self.WITHDRAWAL_INSUFFICIENT_FUNDS, balance
                new_balance = balance - amount
                transaction.update(doc_ref, {
                    "totalBalance": new_balance,
                    "hasWithdrawn": True,
                    "withdrawReservedAt": timezone.now(),
                })
                return self.WITHDRAWAL_RESERVED, new_balance

            return _txn(self.db.transaction())
        except Exception as e:
            logger.error(f"Error reserving withdrawal for {email}: {e}")
            return None

    def release_withdrawal(self, email: str, amount: float) -> bool:
        """Undo a reservation after a failed payout"""
        if not self.db:
            return False

        try:
            self.db.collection(self.OWNERS_COLLECTION).document(email).update({
                "totalBalance": firestore.Increment(amount),
                "hasWithdrawn": False,
                "withdrawReservedAt": firestore.DELETE_FIELD,
            })
            logger.info(f"Released withdrawal reservation of {amount} for {email}")
            return True
        except Exception as e:
            logger.error(f"Error releasing withdrawal for {email}: {e}")
            return False


# Singleton instance
firestore_service = FirestoreService()
