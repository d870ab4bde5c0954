from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("decks/", include("decks.urls")),
    path("livequiz/", include("livequiz.urls")),
]
