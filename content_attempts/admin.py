from django.contrib import admin
from django.contrib import messages
from django.utils import timezone
from django.utils.html import format_html

from .exceptions import ContentAttemptError
from .models import ContentAttempt, TrackableContent
from .state_machine import AttemptStateMachine


@admin.action(description='Soft delete selected attempts')
def soft_delete_attempts(modeladmin, request, queryset):
    count = queryset.filter(is_deleted=False).update(is_deleted=True, deleted_at=timezone.now())
    messages.success(request, f'Soft deleted {count} attempt(s).')


@admin.action(description='Abandon selected active attempts')
def abandon_attempts(modeladmin, request, queryset):
    abandoned = 0
    for attempt in queryset:
        try:
            AttemptStateMachine(attempt).abandon(reason=f'abandoned by admin {request.user.get_username()}')
            abandoned += 1
        except ContentAttemptError as e:
            messages.warning(request, f'Attempt {attempt.attempt_number} for {attempt.learner}: {e}')
    if abandoned:
        messages.success(request, f'Abandoned {abandoned} attempt(s).')
    else:
        messages.info(request, 'No active attempts among the selection.')


@admin.register(TrackableContent)
class TrackableContentAdmin(admin.ModelAdmin):
    list_display = ['title', 'content_type', 'scorm_version', 'issues_certificate', 'created_at']
    list_filter = ['content_type', 'scorm_version', 'issues_certificate']
    search_fields = ['title', 'launch_url']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(ContentAttempt)
class ContentAttemptAdmin(admin.ModelAdmin):
    list_display = [
        'learner', 'content', 'attempt_number', 'status',
        'progress_percent', 'score', 'started_at', 'status_indicator'
    ]
    list_filter = ['status', 'scorm_version', 'is_deleted', 'started_at']
    search_fields = ['learner__username', 'learner__email', 'content__title', 'enrollment_id']
    readonly_fields = ['id', 'version', 'started_at', 'last_accessed_at', 'completed_at', 'created_at', 'updated_at']
    actions = [abandon_attempts, soft_delete_attempts]

    def get_queryset(self, request):
        return ContentAttempt.all_objects.select_related('content', 'learner')

    def status_indicator(self, obj):
        if obj.is_deleted:
            return format_html('<span style="color: gray;">Deleted</span>')
        if obj.status in (ContentAttempt.STATUS_PASSED, ContentAttempt.STATUS_COMPLETED):
            return format_html('<span style="color: green;">Complete</span>')
        if obj.status in (ContentAttempt.STATUS_FAILED, ContentAttempt.STATUS_ABANDONED):
            return format_html('<span style="color: red;">{}</span>', obj.get_status_display())
        return format_html('<span style="color: orange;">{}</span>', obj.get_status_display())

    status_indicator.short_description = 'Outcome'

    fieldsets = (
        ('Basic Information', {
            'fields': ('id', 'learner', 'content', 'enrollment_id', 'attempt_number', 'status')
        }),
        ('Progress & Score', {
            'fields': ('progress_percent', 'score', 'score_raw', 'score_min', 'score_max', 'score_scaled', 'passed')
        }),
        ('Time Tracking', {
            'fields': ('time_spent_seconds', 'session_time_seconds', 'launch_time_spent_seconds')
        }),
        ('Location & Suspend Data', {
            'fields': ('scorm_version', 'location', 'suspend_data')
        }),
        ('CMI Data Storage', {
            'fields': ('cmi_data', 'cmi_updated_at', 'certificate_reference'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('started_at', 'last_accessed_at', 'completed_at', 'created_at', 'updated_at', 'version')
        }),
        ('Deletion', {
            'fields': ('is_deleted', 'deleted_at'),
            'classes': ('collapse',)
        }),
    )
