"""
URL configuration for the binventory project.

All JSON endpoints are mounted under /api/v1/. Scanned QR codes land on /b/<code>.
"""
from django.contrib import admin
from django.urls import path, include

from binventory.qr.views import short_link_redirect

admin.site.site_header = "Binventory Admin Panel"
admin.site.site_title = "Binventory Admin Portal"
admin.site.index_title = "Welcome to the Binventory Admin Portal"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('binventory.core.urls')),
    path('api/v1/', include('binventory.organizations.urls')),
    path('api/v1/', include('binventory.permissions.urls')),
    path('api/v1/', include('binventory.catalog.urls')),
    path('api/v1/', include('binventory.bins.urls')),
    path('api/v1/', include('binventory.qr.urls')),
    path('api/v1/', include('binventory.search.urls')),
    path('api/v1/', include('binventory.scanner.urls')),
    path('b/<str:code>', short_link_redirect, name='qr-short-link'),
]
