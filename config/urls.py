"""
URL configuration for the fiscal invoicing platform.
"""

from django.contrib import admin
from django.urls import include, path

# ===============================================================================
# MAIN URL PATTERNS
# ===============================================================================

urlpatterns = [
    path("admin/", admin.site.urls),
    # Operator API for the invoicing pipeline (staff only)
    path("api/invoicing/", include("apps.invoicing.api.urls")),
]
