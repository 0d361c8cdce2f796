from .models import DataPackage


def get_package(package_id):
    """Return the active package with this id, or None."""
    if package_id is None:
        return None
    return DataPackage.objects.filter(pk=package_id, is_active=True).first()
