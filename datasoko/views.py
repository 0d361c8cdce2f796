from django.http import JsonResponse


def index(request):
    return JsonResponse({
        "message": "DataSoko bundle payments API",
        "endpoints": {
            "admin": "/admin/",
            "mpesa_initiate": "/payments/mpesa/initiate/",
            "mpesa_callback": "/payments/mpesa/callback/",
            "payment_status": "/payments/status/",
            "payment_status_by_reference": "/payments/<reference>/status/",
            "webhooks": "/payments/webhooks/",
        }
    })
