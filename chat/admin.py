from django.contrib import admin
from django.db.models import Count, Max

from chat.models import Chat, ChatMember, Message


class ChatMemberInline(admin.TabularInline):
    model = ChatMember
    extra = 0
    raw_id_fields = ('user',)


class ChatAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'member_count', 'message_count', 'last_message_at', 'created_at')
    search_fields = ('name', 'members__username')
    readonly_fields = ('created_at',)
    inlines = [ChatMemberInline]

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(
            member_count=Count('memberships', distinct=True),
            message_count=Count('messages', distinct=True),
            last_message_at=Max('messages__created_at'),
        )

    @admin.display(ordering='member_count')
    def member_count(self, obj):
        return obj.member_count

    @admin.display(ordering='message_count')
    def message_count(self, obj):
        return obj.message_count

    @admin.display(ordering='last_message_at')
    def last_message_at(self, obj):
        return obj.last_message_at


class MessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'chat', 'author', 'created_at')
    list_filter = ('chat',)
    search_fields = ('text', 'author__username')
    raw_id_fields = ('chat', 'author')
    readonly_fields = ('created_at',)


admin.site.register(Chat, ChatAdmin)
admin.site.register(Message, MessageAdmin)
