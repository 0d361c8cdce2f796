from django.urls import path
from . import views

urlpatterns = [
    path('mpesa/initiate/', views.mpesa_initiate, name='mpesa_initiate'),
    path('mpesa/callback/', views.mpesa_callback, name='mpesa_callback'),
    path('status/', views.payment_status_query, name='payment_status_query'),
    path('<str:reference>/status/', views.payment_status, name='payment_status'),
    path('webhooks/', views.webhooks, name='webhooks'),
]
