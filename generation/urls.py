from rest_framework.routers import DefaultRouter
from .views import AudioViewSet, FlowViewSet, ImageViewSet, ScriptViewSet, VideoViewSet

router = DefaultRouter()
router.register('scripts', ScriptViewSet, basename='script')
router.register('audios', AudioViewSet, basename='audio')
router.register('images', ImageViewSet, basename='image')
router.register('videos', VideoViewSet, basename='video')
router.register('flow', FlowViewSet, basename='flow')

urlpatterns = router.urls
