import json

from django.db import DatabaseError, connection
from django.http import StreamingHttpResponse
from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.renderers import BaseRenderer, JSONRenderer
from rest_framework.response import Response
from rest_framework.utils.encoders import JSONEncoder

from mediaforge.errors import InvalidInputError, UpstreamGenerationError
from .serializers import (
    AudioCreateSerializer,
    AudioSerializer,
    GenerateImagesSerializer,
    GenerateVideoJobSerializer,
    GenerationJobSerializer,
    ImageCreateSerializer,
    ImageSerializer,
    ScriptCreateSerializer,
    ScriptSerializer,
    ScriptUpdateSerializer,
    VideoCreateSerializer,
    VideoSerializer,
    paginated,
)
from .services.assets import AudioService, ImageService, ScriptService, VideoService
from .services.content_gen import ContentGenClient, GenerationBackendError
from .services.jobs import JobRunner, broker_available
from .services.orchestrator import GenerationOrchestrator

PAGE_PARAMETERS = [
    OpenApiParameter(name='page', type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
    OpenApiParameter(name='limit', type=OpenApiTypes.INT, location=OpenApiParameter.QUERY, required=False),
]


class EventStreamRenderer(BaseRenderer):
    """Lets clients ask for text/event-stream; only errors pass through it."""
    media_type = 'text/event-stream'
    format = 'sse'

    def render(self, data, accepted_media_type=None, renderer_context=None):
        return f"event: error\ndata: {json.dumps(data, cls=JSONEncoder)}\n\n".encode()


def page_params(request):
    try:
        return int(request.query_params.get('page', 1)), int(request.query_params.get('limit', 10))
    except ValueError:
        raise InvalidInputError('page and limit must be integers.')


class AssetViewSet(viewsets.GenericViewSet):
    """List, retrieve, patch and soft-delete for one asset type.

    Subclasses provide ``service_class`` and implement ``create``.
    """
    service_class = None
    update_serializer_class = None
    lookup_value_regex = '[^/]+'

    def get_service(self):
        return self.service_class()

    def get_queryset(self):
        return self.service_class.model.objects.alive().filter(owner=self.request.user)

    @extend_schema(parameters=PAGE_PARAMETERS)
    def list(self, request):
        page, limit = page_params(request)
        result = self.get_service().find_all(page=page, limit=limit, owner=request.user)
        return Response(paginated(result, self.get_serializer_class()))

    def retrieve(self, request, pk=None):
        asset = self.get_service().find_one(pk, owner=request.user)
        return Response(self.get_serializer(asset).data)

    def partial_update(self, request, pk=None):
        if self.update_serializer_class is None:
            raise InvalidInputError(f"{self.service_class.label.capitalize()} assets cannot be edited.")
        serializer = self.update_serializer_class(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        if not serializer.validated_data:
            raise InvalidInputError('No updatable fields supplied.')
        asset = self.get_service().update(pk, owner=request.user, **serializer.validated_data)
        return Response(self.get_serializer(asset).data)

    def destroy(self, request, pk=None):
        self.get_service().soft_delete(pk, owner=request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema(tags=['Assets'])
class ScriptViewSet(AssetViewSet):
    service_class = ScriptService
    serializer_class = ScriptSerializer
    update_serializer_class = ScriptUpdateSerializer

    @extend_schema(
        summary='Generate a script',
        request=ScriptCreateSerializer,
        responses={201: ScriptSerializer, 502: OpenApiResponse(description='Generation backend failed')},
        examples=[OpenApiExample('Example Request', value={'title': 'S1', 'style': 'documentary'})],
    )
    def create(self, request):
        serializer = ScriptCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        script = self.get_service().create(owner=request.user, **serializer.validated_data)
        return Response(ScriptSerializer(script).data, status=status.HTTP_201_CREATED)


@extend_schema(tags=['Assets'])
class AudioViewSet(AssetViewSet):
    service_class = AudioService
    serializer_class = AudioSerializer

    @extend_schema(summary='Synthesize narration for a script', request=AudioCreateSerializer, responses={201: AudioSerializer})
    def create(self, request):
        serializer = AudioCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        audio = self.get_service().create(data['script_id'], request.user, provider=data['provider'])
        return Response(AudioSerializer(audio).data, status=status.HTTP_201_CREATED)


@extend_schema(tags=['Assets'])
class ImageViewSet(AssetViewSet):
    service_class = ImageService
    serializer_class = ImageSerializer

    @extend_schema(summary='Render an image from a prompt', request=ImageCreateSerializer, responses={201: ImageSerializer})
    def create(self, request):
        serializer = ImageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        image = self.get_service().create(owner=request.user, **serializer.validated_data)
        return Response(ImageSerializer(image).data, status=status.HTTP_201_CREATED)


@extend_schema(tags=['Assets'])
class VideoViewSet(AssetViewSet):
    service_class = VideoService
    serializer_class = VideoSerializer

    @extend_schema(summary='Assemble a video synchronously', request=VideoCreateSerializer, responses={201: VideoSerializer})
    def create(self, request):
        serializer = VideoCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        video = self.get_service().create(
            data['image_urls'],
            data['audio_url'],
            data['script_id'],
            request.user,
            scripts=data.get('scripts'),
            transition_duration=data.get('transition_duration'),
            mode=data['mode'],
        )
        return Response(VideoSerializer(video).data, status=status.HTTP_201_CREATED)

    @extend_schema(summary='Find the video generated from a script', responses={200: VideoSerializer})
    @action(detail=False, methods=['get'], url_path='by-script/(?P<script_id>[^/.]+)')
    def by_script(self, request, script_id=None):
        video = self.get_service().find_by_script(script_id, owner=request.user)
        return Response(VideoSerializer(video).data)


@extend_schema(tags=['Flow'])
class FlowViewSet(viewsets.GenericViewSet):
    serializer_class = GenerationJobSerializer

    def get_runner(self):
        return JobRunner()

    @extend_schema(
        summary='Start a video generation job',
        description='Queues the full pipeline. Supplying both scripts and image_urls reuses them instead of generating new images.',
        request=GenerateVideoJobSerializer,
        responses={
            202: OpenApiResponse(description='Job accepted'),
            400: OpenApiResponse(description='Validation error'),
        },
        operation_id='flow_generate_video_job',
        examples=[
            OpenApiExample(
                'Reuse provided assets',
                value={
                    'script_id': '6f1c2a8e-4f4b-4d7e-9c1a-2b3c4d5e6f70',
                    'scripts': ['frag1', 'frag2'],
                    'image_urls': ['https://cdn.example.com/u1.png', 'https://cdn.example.com/u2.png'],
                },
            )
        ],
    )
    @action(detail=False, methods=['post'], url_path='generate-video-job')
    def generate_video_job(self, request):
        serializer = GenerateVideoJobSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        job = self.get_runner().enqueue(
            request.user, data['script_id'], scripts=data.get('scripts'), image_urls=data.get('image_urls'),
        )
        return Response({
            'job_id': str(job.id),
            'status': job.status,
            'message': 'Video generation started',
        }, status=status.HTTP_202_ACCEPTED)

    @extend_schema(
        summary='Get job status',
        operation_id='flow_job_status',
        parameters=[OpenApiParameter(name='job_id', type=OpenApiTypes.UUID, location=OpenApiParameter.PATH)],
        responses={200: GenerationJobSerializer, 404: OpenApiResponse(description='Job not found')},
    )
    @action(detail=False, methods=['get'], url_path='jobs/(?P<job_id>[^/.]+)')
    def job_status(self, request, job_id=None):
        job = self.get_runner().get_status(job_id, user=request.user)
        return Response(GenerationJobSerializer(job).data)

    @extend_schema(
        summary='Stream job progress',
        description='Server-sent events; one message per status, stage or progress change until the job finishes.',
        operation_id='flow_job_stream',
        parameters=[OpenApiParameter(name='job_id', type=OpenApiTypes.UUID, location=OpenApiParameter.PATH)],
        responses={(200, 'text/event-stream'): OpenApiTypes.STR, 404: OpenApiResponse(description='Job not found')},
    )
    @action(detail=False, methods=['get'], url_path='jobs/(?P<job_id>[^/.]+)/stream',
            renderer_classes=[JSONRenderer, EventStreamRenderer])
    def job_stream(self, request, job_id=None):
        updates = self.get_runner().watch(job_id, user=request.user)
        events = (
            f"data: {json.dumps(GenerationJobSerializer(job).data, cls=JSONEncoder)}\n\n"
            for job in updates
        )
        response = StreamingHttpResponse(events, content_type='text/event-stream')
        response['Cache-Control'] = 'no-cache'
        response['X-Accel-Buffering'] = 'no'
        return response

    @extend_schema(
        summary='List generation jobs (admin)',
        operation_id='flow_list_jobs',
        parameters=[
            OpenApiParameter(
                name='status', type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False,
                enum=['queued', 'running', 'completed', 'failed'],
            ),
        ],
        responses={200: GenerationJobSerializer(many=True)},
    )
    @action(detail=False, methods=['get'], url_path='jobs', permission_classes=[IsAdminUser])
    def list_jobs(self, request):
        runner = self.get_runner()
        jobs = runner.list_jobs(status=request.query_params.get('status'))
        return Response({
            'counts': runner.counts(),
            'jobs': GenerationJobSerializer(jobs, many=True).data,
        })

    @extend_schema(
        summary='Retry a failed job',
        operation_id='flow_retry_job',
        request=None,
        responses={202: OpenApiResponse(description='Retry queued'), 409: OpenApiResponse(description='Job has not failed')},
    )
    @action(detail=False, methods=['post'], url_path='jobs/(?P<job_id>[^/.]+)/retry')
    def retry_job(self, request, job_id=None):
        job = self.get_runner().retry(job_id, user=request.user)
        return Response({'job_id': str(job.id), 'status': job.status, 'retry_of': str(job_id)}, status=status.HTTP_202_ACCEPTED)

    @extend_schema(
        summary='Generate images from script content',
        operation_id='flow_generate_images',
        request=GenerateImagesSerializer,
        responses={200: OpenApiResponse(description='Image URLs and their narration fragments')},
    )
    @action(detail=False, methods=['post'], url_path='generate-images')
    def generate_images(self, request):
        serializer = GenerateImagesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        result = GenerationOrchestrator().generate_images(data['content'], data['style'], request.user)
        return Response(result)

    @extend_schema(
        summary='Preview a narration voice',
        operation_id='flow_preview_voice',
        parameters=[OpenApiParameter(name='voice_id', type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False)],
        responses={200: OpenApiResponse(description='Voice sample URL')},
    )
    @action(detail=False, methods=['get'], url_path='preview-voice')
    def preview_voice(self, request):
        try:
            sample = ContentGenClient().preview_voice(request.query_params.get('voice_id'))
        except GenerationBackendError as e:
            raise UpstreamGenerationError('preview_voice', f"Failed to preview voice: {e.message}")
        return Response(sample)

    @extend_schema(tags=['System'], summary='Health check', operation_id='system_health')
    @action(detail=False, methods=['get'], permission_classes=[AllowAny])
    def health(self, request):
        db_status = 'connected'
        try:
            connection.ensure_connection()
        except DatabaseError:
            db_status = 'error'
        redis_status = 'connected' if broker_available() else 'error'
        return Response({
            'status': 'healthy' if db_status == 'connected' else 'degraded',
            'timestamp': timezone.now(),
            'database': db_status,
            'redis': redis_status,
        })
