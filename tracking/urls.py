"""
Tracking App URLs
"""

from django.urls import path

from .views import CourierLocationView, CourierPositionsView, TrackingStopView

urlpatterns = [
    path('location/', CourierLocationView.as_view(), name='tracking-location'),
    path('stop/', TrackingStopView.as_view(), name='tracking-stop'),
    path('couriers/', CourierPositionsView.as_view(), name='tracking-couriers'),
]
