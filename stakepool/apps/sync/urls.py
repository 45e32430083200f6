from django.urls import path
from .views import sync_transaction_view

urlpatterns = [
    path("transaction/", sync_transaction_view, name="sync_transaction"),
]
