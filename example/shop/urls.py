from django.urls import path

from . import views

urlpatterns = [
    path("products/<str:product_id>/codes/", views.upload_codes, name="upload_codes"),
    path("products/<str:product_id>/codes.txt", views.export_codes, name="export_codes"),
    path("products/<str:product_id>/stats/", views.product_stats, name="product_stats"),
    path("stats/", views.all_stats, name="all_stats"),
    path("orders/", views.checkout, name="checkout"),
    path("orders/<str:order_id>/void/", views.void_order, name="void_order"),
]
