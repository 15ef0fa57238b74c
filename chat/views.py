from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from chat.exceptions import ChatNotExist, StoreError, UserNotExist
from chat.forms import ChatsByUserForm, CreateChatForm, CreateMessageForm, MessagesByChatForm
from chat.store import get_store
from messenger.decorators import json_post_required
from messenger.views import form_error_response, store_error_response


@csrf_exempt
@json_post_required
def create_chat(request, payload):
    form = CreateChatForm(payload)

    if not form.is_valid():
        return form_error_response(form)

    try:
        chat_id = get_store().create_chat(form.cleaned_data['name'], form.cleaned_data['users'])
    except StoreError as e:
        return store_error_response(e)

    return JsonResponse({"id": chat_id}, status=201)


@csrf_exempt
@json_post_required
def create_message(request, payload):
    form = CreateMessageForm(payload)

    if not form.is_valid():
        return form_error_response(form)

    try:
        message_id = get_store().create_message(
            form.cleaned_data['chat'], form.cleaned_data['author'], form.cleaned_data['text'])
    except StoreError as e:
        return store_error_response(e, messages={
            ChatNotExist: "Chat with provided id does not exist",
            UserNotExist: "Author with provided id does not exist",
        })

    return JsonResponse({"id": message_id}, status=201)


@csrf_exempt
@json_post_required
def chats_by_user(request, payload):
    form = ChatsByUserForm(payload)

    if not form.is_valid():
        return form_error_response(form)

    try:
        chats = get_store().chats_by_user_id(form.cleaned_data['user'])
    except StoreError as e:
        return store_error_response(e)

    return JsonResponse([chat.model_dump(mode="json") for chat in chats], safe=False)


@csrf_exempt
@json_post_required
def messages_by_chat(request, payload):
    form = MessagesByChatForm(payload)

    if not form.is_valid():
        return form_error_response(form)

    try:
        messages = get_store().messages_by_chat_id(form.cleaned_data['chat'])
    except StoreError as e:
        return store_error_response(e)

    return JsonResponse([message.model_dump(mode="json") for message in messages], safe=False)
