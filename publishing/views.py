from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from mediaforge.errors import InvalidInputError
from generation.views import PAGE_PARAMETERS, page_params
from generation.serializers import paginated
from .serializers import (
    CallbackSerializer,
    ChannelAnalyticsQuerySerializer,
    PublishingRecordSerializer,
    PublishingRecordUpdateSerializer,
    PublishRequestSerializer,
)
from .services.publisher import PlatformPublisher, PublishingHistoryService
from .services.statistics import ChannelAnalyticsService, VideoStatisticsService
from .services.token_store import TokenStore
from .services.youtube_auth import YouTubeAuthManager


@extend_schema(tags=['Publishing'])
class YouTubeAuthViewSet(viewsets.GenericViewSet):
    def get_auth(self):
        return YouTubeAuthManager()

    @extend_schema(
        summary='Get the YouTube authorization URL',
        operation_id='youtube_auth_url',
        responses={200: OpenApiResponse(description='URL to send the user to')},
    )
    @action(detail=False, methods=['get'], url_path='auth-url')
    def auth_url(self, request):
        return Response({'url': self.get_auth().get_authorization_url(request.user.pk)})

    @extend_schema(
        summary='OAuth redirect target',
        description='Exchanges the authorization code for tokens and stores them for the user named in state.',
        operation_id='youtube_callback',
        parameters=[
            OpenApiParameter(name='code', type=OpenApiTypes.STR, location=OpenApiParameter.QUERY),
            OpenApiParameter(name='state', type=OpenApiTypes.STR, location=OpenApiParameter.QUERY),
        ],
        responses={
            200: OpenApiResponse(description='Channel connected'),
            400: OpenApiResponse(description='Invalid or expired code'),
            502: OpenApiResponse(description='Google unavailable or channel lookup failed'),
        },
    )
    @action(detail=False, methods=['get'], permission_classes=[AllowAny], authentication_classes=[])
    def callback(self, request):
        serializer = CallbackSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        auth = self.get_auth()
        user_id = auth.decode_state(serializer.validated_data['state'])
        User = get_user_model()
        try:
            user = User.objects.get(pk=user_id)
        except (User.DoesNotExist, ValidationError, ValueError):
            raise InvalidInputError('Invalid OAuth state.')
        channel_id, channel_name = auth.exchange_code(serializer.validated_data['code'], user.pk)
        return Response({'channel_id': channel_id, 'channel_name': channel_name})

    @extend_schema(summary='Current YouTube connection', operation_id='youtube_connection')
    @action(detail=False, methods=['get'])
    def connection(self, request):
        bundle = TokenStore().get(request.user.pk)
        if bundle is None:
            return Response({'connected': False})
        return Response({
            'connected': True,
            'channel_id': bundle.channel_id,
            'channel_name': bundle.channel_name,
            'expires_at': bundle.expiry,
        })

    @extend_schema(summary='Forget stored YouTube credentials', operation_id='youtube_disconnect', request=None)
    @action(detail=False, methods=['post'])
    def disconnect(self, request):
        TokenStore().invalidate(request.user.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        summary='Channel analytics over a date range',
        operation_id='youtube_channel_analytics',
        parameters=[ChannelAnalyticsQuerySerializer],
        responses={200: OpenApiResponse(description='One row per day or month'), 401: OpenApiResponse(description='YouTube authorization required')},
    )
    @action(detail=False, methods=['get'], url_path='analytics/channel')
    def channel_analytics(self, request):
        serializer = ChannelAnalyticsQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        return Response(ChannelAnalyticsService().get_channel_analytics(request.user, **serializer.validated_data))


@extend_schema(tags=['Publishing'])
class PublisherViewSet(viewsets.GenericViewSet):
    serializer_class = PublishingRecordSerializer

    @extend_schema(
        summary='Publish a completed video',
        operation_id='publisher_publish',
        request=PublishRequestSerializer,
        responses={
            201: PublishingRecordSerializer,
            400: OpenApiResponse(description='Unsupported platform or invalid input'),
            401: OpenApiResponse(description='YouTube authorization required'),
            409: OpenApiResponse(description='Video is not in a publishable state'),
            502: OpenApiResponse(description='Upload failed; video left unpublished'),
        },
        examples=[
            OpenApiExample(
                'Example Request',
                value={
                    'video_id': '2b0d6c1e-8a51-4c0f-9f4e-7a6f9d3b1c22',
                    'platform': 'YOUTUBE',
                    'title': 'Deep sea documentary',
                    'description': 'Generated narration over rendered scenes',
                    'tags': ['documentary', 'ocean'],
                    'privacy_status': 'unlisted',
                },
            )
        ],
    )
    @action(detail=False, methods=['post'])
    def publish(self, request):
        serializer = PublishRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        record = PlatformPublisher().publish(
            data['video_id'],
            data['platform'],
            data['title'],
            description=data['description'],
            tags=data['tags'],
            user=request.user,
            privacy_status=data['privacy_status'],
        )
        return Response(PublishingRecordSerializer(record).data, status=status.HTTP_201_CREATED)

    @extend_schema(summary='Publishing history', operation_id='publisher_history', parameters=PAGE_PARAMETERS)
    @action(detail=False, methods=['get'])
    def history(self, request):
        page, limit = page_params(request)
        result = PublishingHistoryService().find_all(request.user, page=page, limit=limit)
        return Response(paginated(result, PublishingRecordSerializer))

    @extend_schema(
        summary='Read, edit or remove a publishing record',
        description='PATCH edits the stored metadata only. DELETE hides the record from history.',
        operation_id='publisher_history_detail',
        request=PublishingRecordUpdateSerializer,
        responses={200: PublishingRecordSerializer, 204: None},
    )
    @action(detail=False, methods=['get', 'patch', 'delete'], url_path='history/(?P<record_id>[^/.]+)')
    def history_detail(self, request, record_id=None):
        history = PublishingHistoryService()
        if request.method == 'DELETE':
            history.remove(record_id, request.user)
            return Response(status=status.HTTP_204_NO_CONTENT)
        if request.method == 'PATCH':
            serializer = PublishingRecordUpdateSerializer(data=request.data, partial=True)
            serializer.is_valid(raise_exception=True)
            if not serializer.validated_data:
                raise InvalidInputError('No updatable fields supplied.')
            record = history.update(record_id, request.user, **serializer.validated_data)
        else:
            record = history.find_one(record_id, request.user)
        return Response(PublishingRecordSerializer(record).data)

    @extend_schema(summary='YouTube statistics for a published video', operation_id='publisher_statistics')
    @action(detail=False, methods=['get'], url_path='statistics/(?P<record_id>[^/.]+)')
    def statistics(self, request, record_id=None):
        return Response(VideoStatisticsService().get_statistics(record_id, request.user))
