from django.contrib import admin

from .models import Follow, User, UserSession


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('external_id', 'email', 'first_name', 'last_name', 'is_creator', 'total_earnings', 'created_at')
    list_filter = ('is_creator', 'is_staff', 'is_active')
    search_fields = ('external_id', 'email', 'first_name', 'last_name')
    readonly_fields = ('total_earnings',)


@admin.register(UserSession)
class UserSessionAdmin(admin.ModelAdmin):
    list_display = ('user', 'ip_address', 'device_info', 'expires_at', 'created_at')
    search_fields = ('user__email', 'ip_address')


admin.site.register(Follow)
