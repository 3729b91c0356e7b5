# Models are stored in Firebase Firestore, not Django DB.
# This file is kept for Django app structure compatibility.
#
# Firestore Collections:
# - transactions/{id}: Deposits keyed by reference (balanceCredited marks a settled credit),
#   withdrawals under auto IDs, each with status history
# - appuser/{id}: Customer profiles looked up by email
# - owner/{email}: Cinema owner accounts with totalBalance and hasWithdrawn
# - ownerAmount/{id}: Deposit balance per owner (movieEmail, totalAmount)
#
# See firebase_service.py for Firestore operations.
