from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from accounts.forms import CreateUserForm
from chat.exceptions import StoreError
from chat.store import get_store
from messenger.decorators import json_post_required
from messenger.views import form_error_response, store_error_response


@csrf_exempt
@json_post_required
def create_user(request, payload):
    form = CreateUserForm(payload)

    if not form.is_valid():
        return form_error_response(form)

    try:
        user_id = get_store().create_user(form.cleaned_data['username'])
    except StoreError as e:
        return store_error_response(e)

    return JsonResponse({"id": user_id}, status=201)
