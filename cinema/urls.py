from django.urls import path
from . import views

urlpatterns = [
    # Health check
    path("health", views.health, name="health"),

    # In-memory payment records
    path("payment", views.payment_create, name="payment_create"),
    path("payment/<str:tx_ref>", views.payment_detail, name="payment_detail"),

    # Firestore transactions
    path("payments/<str:tx_ref>", views.transaction_detail, name="transaction_detail"),
    path("transactions", views.transaction_list, name="transaction_list"),
    path("transactions/reconcile", views.transaction_reconcile, name="transaction_reconcile"),

    # Deposits and payouts (Chapa)
    path("deposit", views.deposit, name="deposit"),
    path("deposit/callback", views.deposit_callback, name="deposit_callback"),
    path("withdraw", views.withdraw, name="withdraw"),
    path("payouts", views.payouts, name="payouts"),
]
