from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("users/", include("accounts.urls")),
    path("", include("chat.urls")),
]

handler404 = "messenger.views.page_not_found"
handler500 = "messenger.views.server_error"
