from django.contrib import admin

from accounts.models import User


class UserAdmin(admin.ModelAdmin):
    list_display = ('id', 'username', 'created_at')
    search_fields = ('username',)
    readonly_fields = ('created_at',)


admin.site.register(User, UserAdmin)
