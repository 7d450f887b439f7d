from rest_framework.routers import DefaultRouter
from .views import PublisherViewSet, YouTubeAuthViewSet

router = DefaultRouter()
router.register('youtube', YouTubeAuthViewSet, basename='youtube')
router.register('publisher', PublisherViewSet, basename='publisher')

urlpatterns = router.urls
