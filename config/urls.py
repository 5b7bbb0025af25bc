"""
URL configuration for the booking dispatch project.
"""
from django.urls import include, path

urlpatterns = [
    path('', include('dispatch.urls')),
]
