from django.contrib import admin

from dx_core.hospitals.models import Hospital, HospitalMembership


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "is_active", "created_at")
    search_fields = ("name", "code")
    list_filter = ("is_active",)


@admin.register(HospitalMembership)
class HospitalMembershipAdmin(admin.ModelAdmin):
    list_display = ("hospital", "user", "role_code", "designation", "is_active")
    list_filter = ("hospital", "is_active")
    search_fields = ("user__username", "designation")
