from django.urls import path
from .views import qr_generate, qr_validate, qr_image, qr_label

urlpatterns = [
    path('qr/', qr_generate, name='qr-generate'),
    path('qr/validate/', qr_validate, name='qr-validate'),
    path('qr/image/<uuid:bin_id>/', qr_image, name='qr-image'),
    path('qr/label/<uuid:bin_id>/', qr_label, name='qr-label'),
]
