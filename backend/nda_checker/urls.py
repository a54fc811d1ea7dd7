from django.urls import include, path

urlpatterns = [
    path('api/', include('documents.urls')),
    path('api/', include('analysis.urls')),
    path('api/comparison/', include('comparison.urls')),
]
