from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('publishing', '0001_initial'),
    ]

    operations = [
        migrations.AddField(
            model_name='publishingrecord',
            name='response',
            field=models.JSONField(blank=True, default=dict),
        ),
        migrations.AddField(
            model_name='publishingrecord',
            name='deleted_at',
            field=models.DateTimeField(blank=True, null=True),
        ),
    ]
