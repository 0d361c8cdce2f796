from django.contrib import admin
from .models import DataPackage

@admin.register(DataPackage)
class DataPackageAdmin(admin.ModelAdmin):
    list_display = ('name', 'data_volume', 'price', 'provider', 'category', 'is_active')
    list_filter = ('provider', 'category', 'is_active')
    search_fields = ('name',)
