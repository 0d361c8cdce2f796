from django.db import models


class DataPackage(models.Model):
    class Provider(models.TextChoices):
        SAFARICOM = 'safaricom', 'Safaricom'
        AIRTEL = 'airtel', 'Airtel'
        TELKOM = 'telkom', 'Telkom'

    class Category(models.TextChoices):
        DAILY = 'daily', 'Daily'
        WEEKLY = 'weekly', 'Weekly'
        MONTHLY = 'monthly', 'Monthly'

    name = models.CharField(max_length=100)
    description = models.CharField(max_length=255, blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    validity_days = models.PositiveIntegerField(default=1)
    data_volume = models.CharField(max_length=20)  # e.g. 400MB, 1GB
    provider = models.CharField(max_length=20, choices=Provider.choices, default=Provider.SAFARICOM)
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.DAILY)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.data_volume}) - {self.price}"
