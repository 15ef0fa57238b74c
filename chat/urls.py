from django.urls import path

from chat import views

urlpatterns = [
    path("chats/add", views.create_chat, name="create_chat"),
    path("chats/get", views.chats_by_user, name="chats_by_user"),
    path("messages/add", views.create_message, name="create_message"),
    path("messages/get", views.messages_by_chat, name="messages_by_chat"),
]
