from django.urls import path
from . import views

urlpatterns = [
    # Menus
    path('menus/', views.menus, name='menus'),
    path('menus/<str:menu_id>/', views.menu_detail, name='menu_detail'),
    path('menus/<str:menu_id>/edit/', views.edit_menu, name='edit_menu'),
    path('menus/<str:menu_id>/delete/', views.delete_menu, name='delete_menu'),
    path('menus/<str:menu_id>/image/', views.upload_menu_image, name='upload_menu_image'),

    # Orders
    path('orders/', views.orders, name='orders'),
    path('orders/mine/', views.my_orders, name='my_orders'),
    path('orders/<str:order_id>/withdraw/', views.withdraw_order, name='withdraw_order'),
    path('orders/<str:order_id>/cancel/', views.request_cancellation, name='request_cancellation'),
    path('orders/<str:order_id>/approve/', views.approve_order, name='approve_order'),
    path('orders/<str:order_id>/reject/', views.reject_order, name='reject_order'),
    path('orders/<str:order_id>/cancellation/approve/', views.approve_cancellation, name='approve_cancellation'),
    path('orders/<str:order_id>/cancellation/reject/', views.reject_cancellation, name='reject_cancellation'),

    # Pickup tokens
    path('tokens/release/', views.release_tokens, name='release_tokens'),
    path('tokens/<str:token>/', views.lookup_token, name='lookup_token'),
    path('tokens/<str:token>/fulfil/', views.fulfil_token, name='fulfil_token'),

    # Bills & statistics
    path('bills/', views.all_bills, name='all_bills'),
    path('bills/mine/', views.my_bills, name='my_bills'),
    path('statistics/', views.statistics, name='statistics'),
    path('dashboard/', views.dashboard, name='dashboard'),
]
