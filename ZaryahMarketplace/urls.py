"""
Main URL configuration for ZaryahMarketplace project.
"""
from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # ==========================================
    # JSON API (orders, payments, wallet, admin settlement)
    # ==========================================
    path('api/', include(('apps.sellers.urls', 'sellers'), namespace='sellers')),
]
