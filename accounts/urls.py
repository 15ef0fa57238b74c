from django.urls import path

from accounts import views

urlpatterns = [
    path("add", views.create_user, name="create_user"),
]
