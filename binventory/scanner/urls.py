from django.urls import path
from .views import scan, sync

urlpatterns = [
    path('scanner/scan/', scan, name='scanner-scan'),
    path('scanner/sync/', sync, name='scanner-sync'),
]
