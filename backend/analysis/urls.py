from django.urls import path

from .views import analyze_ndas

urlpatterns = [
    path('analyze/', analyze_ndas, name='analyze_ndas'),
]
