from django.contrib import admin
from .models import DataAccessLog


@admin.register(DataAccessLog)
class DataAccessLogAdmin(admin.ModelAdmin):
    list_display = ("actor", "resource", "action", "created_at")
    list_filter = ("actor", "resource", "action")
    date_hierarchy = "created_at"
