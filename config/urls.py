"""
URL configuration for the EU VAT core.
Only the admin is exposed here; HTTP handlers live in the consuming project.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
