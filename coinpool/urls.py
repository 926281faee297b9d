"""URL root: the betting API under /api/ and the read-only admin."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("betting.urls")),
]
