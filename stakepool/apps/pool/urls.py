from django.urls import path
from .views import deposit_status_view, deposit_view, position_view, record_yield_view

urlpatterns = [
    path("record-yield/", record_yield_view, name="record_yield"),
    path("deposit/", deposit_view, name="pool_deposit"),
    path("deposit/status/<str:wallet>/", deposit_status_view, name="deposit_status"),
    path("positions/<str:wallet>/", position_view, name="pool_position"),
]
