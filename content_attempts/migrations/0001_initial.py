import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='TrackableContent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=255)),
                ('content_type', models.CharField(choices=[('scorm', 'SCORM Package'), ('video', 'Video'), ('audio', 'Audio'), ('document', 'Document')], default='scorm', max_length=16)),
                ('scorm_version', models.CharField(blank=True, choices=[('1.2', 'SCORM 1.2'), ('2004', 'SCORM 2004')], help_text='SCORM version of the package, empty for non-SCORM content', max_length=8, null=True)),
                ('launch_url', models.CharField(blank=True, default='', help_text='Player launch path; attempts append ?attempt=<id>', max_length=2048)),
                ('duration_seconds', models.PositiveIntegerField(blank=True, help_text='Media duration for video/audio content', null=True)),
                ('completion_threshold', models.DecimalField(blank=True, decimal_places=2, help_text='Watch percentage that completes media content, default from settings', max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('issues_certificate', models.BooleanField(default=False)),
                ('allow_concurrent_attempts', models.BooleanField(default=False, help_text='Allow a learner to open a new attempt while another is still active')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Trackable Content',
                'verbose_name_plural': 'Trackable Content',
                'ordering': ['title'],
            },
        ),
        migrations.CreateModel(
            name='ContentAttempt',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('enrollment_id', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('attempt_number', models.PositiveIntegerField(help_text='Sequential attempt number for this content and learner')),
                ('status', models.CharField(choices=[('not-started', 'Not Started'), ('started', 'Started'), ('in-progress', 'In Progress'), ('suspended', 'Suspended'), ('completed', 'Completed'), ('passed', 'Passed'), ('failed', 'Failed'), ('abandoned', 'Abandoned')], default='not-started', max_length=16)),
                ('progress_percent', models.DecimalField(blank=True, decimal_places=2, max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)])),
                ('time_spent_seconds', models.PositiveIntegerField(default=0, help_text='Cumulative time across sessions, never decreases')),
                ('session_time_seconds', models.PositiveIntegerField(default=0, help_text='Time in the current launch only')),
                ('launch_time_spent_seconds', models.PositiveIntegerField(default=0, help_text='time_spent_seconds when the current launch began')),
                ('score', models.DecimalField(blank=True, decimal_places=4, max_digits=7, null=True)),
                ('score_raw', models.DecimalField(blank=True, decimal_places=4, max_digits=7, null=True)),
                ('score_min', models.DecimalField(blank=True, decimal_places=4, max_digits=7, null=True)),
                ('score_max', models.DecimalField(blank=True, decimal_places=4, max_digits=7, null=True)),
                ('score_scaled', models.DecimalField(blank=True, decimal_places=4, help_text='Scaled score (0-1 range), SCORM 2004 only', max_digits=5, null=True)),
                ('passed', models.BooleanField(blank=True, null=True)),
                ('scorm_version', models.CharField(blank=True, choices=[('1.2', 'SCORM 1.2'), ('2004', 'SCORM 2004')], max_length=8, null=True)),
                ('location', models.TextField(blank=True, help_text='Bookmark position', null=True)),
                ('suspend_data', models.TextField(blank=True, help_text='Opaque suspend data, stored verbatim', null=True)),
                ('cmi_data', models.JSONField(blank=True, default=dict, help_text='CMI field name -> string value')),
                ('cmi_updated_at', models.DateTimeField(blank=True, null=True)),
                ('certificate_reference', models.JSONField(blank=True, null=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('last_accessed_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('is_deleted', models.BooleanField(default=False)),
                ('deleted_at', models.DateTimeField(blank=True, null=True)),
                ('content', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='attempts', to='content_attempts.trackablecontent')),
                ('learner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='content_attempts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'base_manager_name': 'all_objects',
                'unique_together': {('content', 'learner', 'attempt_number')},
                'indexes': [
                    models.Index(fields=['learner', 'content'], name='content_att_learner_3f1a2c_idx'),
                    models.Index(fields=['learner', 'status'], name='content_att_learner_8b7d41_idx'),
                    models.Index(fields=['enrollment_id', 'status'], name='content_att_enrollm_c52e90_idx'),
                ],
            },
        ),
    ]
