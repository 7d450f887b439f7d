import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ('generation', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PublishingRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('platform', models.CharField(choices=[('YOUTUBE', 'YouTube'), ('TIKTOK', 'TikTok'), ('FACEBOOK', 'Facebook')], max_length=16)),
                ('platform_video_id', models.CharField(blank=True, max_length=255)),
                ('status', models.CharField(choices=[('success', 'success'), ('failure', 'failure')], max_length=16)),
                ('title', models.CharField(max_length=100)),
                ('description', models.TextField(blank=True)),
                ('tags', models.JSONField(blank=True, default=list)),
                ('privacy_status', models.CharField(choices=[('private', 'private'), ('public', 'public'), ('unlisted', 'unlisted')], default='private', max_length=16)),
                ('channel_id', models.CharField(blank=True, max_length=255)),
                ('error_message', models.TextField(blank=True)),
                ('published_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='publishing_records', to=settings.AUTH_USER_MODEL)),
                ('video', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='publishing_records', to='generation.video')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'created_at'], name='publish_user_created_idx'),
                    models.Index(fields=['platform', 'platform_video_id'], name='publish_platform_video_idx'),
                ],
            },
        ),
    ]
