from django.urls import path

from .views import BookingResponseView, SweepView

app_name = 'dispatch'

urlpatterns = [
    path('respond/', BookingResponseView.as_view(), name='booking-response'),
    path('api/sweep/', SweepView.as_view(), name='timeout-sweep'),
]
