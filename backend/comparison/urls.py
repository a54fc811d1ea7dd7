from django.urls import path

from .views import comparison_session, demo_comparison, download_report

urlpatterns = [
    path('', comparison_session, name='comparison_session'),
    path('demo/', demo_comparison, name='demo_comparison'),
    path('report/', download_report, name='download_report'),
]
