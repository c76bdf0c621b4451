"""
Content attempt tracking models
One learner's tries at one piece of trackable content, with the complete
CMI tree for SCORM content
"""
import uuid

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from scorm.utils import SCORM_12, SCORM_2004


class TrackableContent(models.Model):
    """A SCORM package, video, audio track or document learners can attempt"""

    CONTENT_TYPE_CHOICES = [
        ('scorm', 'SCORM Package'),
        ('video', 'Video'),
        ('audio', 'Audio'),
        ('document', 'Document'),
    ]

    SCORM_VERSION_CHOICES = [
        (SCORM_12, 'SCORM 1.2'),
        (SCORM_2004, 'SCORM 2004'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    content_type = models.CharField(max_length=16, choices=CONTENT_TYPE_CHOICES, default='scorm')
    scorm_version = models.CharField(
        max_length=8,
        choices=SCORM_VERSION_CHOICES,
        null=True,
        blank=True,
        help_text="SCORM version of the package, empty for non-SCORM content"
    )
    launch_url = models.CharField(
        max_length=2048,
        blank=True,
        default='',
        help_text="Player launch path; attempts append ?attempt=<id>"
    )
    duration_seconds = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Media duration for video/audio content"
    )
    completion_threshold = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Watch percentage that completes media content, default from settings"
    )
    issues_certificate = models.BooleanField(default=False)
    allow_concurrent_attempts = models.BooleanField(
        default=False,
        help_text="Allow a learner to open a new attempt while another is still active"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['title']
        verbose_name = 'Trackable Content'
        verbose_name_plural = 'Trackable Content'

    def __str__(self):
        return f"{self.title} ({self.content_type})"

    @property
    def is_scorm(self):
        return self.content_type == 'scorm'

    @property
    def is_media(self):
        return self.content_type in ('video', 'audio')


class ActiveAttemptManager(models.Manager):
    """Hides soft-deleted attempts"""

    def get_queryset(self):
        return super().get_queryset().filter(is_deleted=False)


class ContentAttempt(models.Model):
    """
    One learner's try at one piece of content

    attempt_number is assigned once on start; time_spent_seconds only
    ever grows; status follows the lifecycle in state_machine.py.
    """

    STATUS_NOT_STARTED = 'not-started'
    STATUS_STARTED = 'started'
    STATUS_IN_PROGRESS = 'in-progress'
    STATUS_SUSPENDED = 'suspended'
    STATUS_COMPLETED = 'completed'
    STATUS_PASSED = 'passed'
    STATUS_FAILED = 'failed'
    STATUS_ABANDONED = 'abandoned'

    STATUS_CHOICES = [
        (STATUS_NOT_STARTED, 'Not Started'),
        (STATUS_STARTED, 'Started'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_SUSPENDED, 'Suspended'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_PASSED, 'Passed'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_ABANDONED, 'Abandoned'),
    ]

    TERMINAL_STATUSES = frozenset([STATUS_COMPLETED, STATUS_PASSED, STATUS_FAILED, STATUS_ABANDONED])

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    content = models.ForeignKey(
        TrackableContent,
        on_delete=models.CASCADE,
        related_name='attempts'
    )
    learner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='content_attempts'
    )
    enrollment_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    attempt_number = models.PositiveIntegerField(
        help_text="Sequential attempt number for this content and learner"
    )
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_NOT_STARTED)

    # Progress
    progress_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    time_spent_seconds = models.PositiveIntegerField(
        default=0,
        help_text="Cumulative time across sessions, never decreases"
    )
    session_time_seconds = models.PositiveIntegerField(
        default=0,
        help_text="Time in the current launch only"
    )
    launch_time_spent_seconds = models.PositiveIntegerField(
        default=0,
        help_text="time_spent_seconds when the current launch began"
    )

    # Scoring
    score = models.DecimalField(max_digits=7, decimal_places=4, null=True, blank=True)
    score_raw = models.DecimalField(max_digits=7, decimal_places=4, null=True, blank=True)
    score_min = models.DecimalField(max_digits=7, decimal_places=4, null=True, blank=True)
    score_max = models.DecimalField(max_digits=7, decimal_places=4, null=True, blank=True)
    score_scaled = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="Scaled score (0-1 range), SCORM 2004 only"
    )
    passed = models.BooleanField(null=True, blank=True)

    # SCORM state
    scorm_version = models.CharField(
        max_length=8,
        choices=TrackableContent.SCORM_VERSION_CHOICES,
        null=True,
        blank=True
    )
    location = models.TextField(null=True, blank=True, help_text="Bookmark position")
    suspend_data = models.TextField(null=True, blank=True, help_text="Opaque suspend data, stored verbatim")
    cmi_data = models.JSONField(default=dict, blank=True, help_text="CMI field name -> string value")
    cmi_updated_at = models.DateTimeField(null=True, blank=True)

    certificate_reference = models.JSONField(null=True, blank=True)

    # Timestamps
    started_at = models.DateTimeField(null=True, blank=True)
    last_accessed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Optimistic concurrency
    version = models.PositiveIntegerField(default=1)

    # Soft delete
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = ActiveAttemptManager()
    all_objects = models.Manager()

    class Meta:
        ordering = ['-created_at']
        base_manager_name = 'all_objects'
        unique_together = [['content', 'learner', 'attempt_number']]
        indexes = [
            models.Index(fields=['learner', 'content'], name='content_att_learner_3f1a2c_idx'),
            models.Index(fields=['learner', 'status'], name='content_att_learner_8b7d41_idx'),
            models.Index(fields=['enrollment_id', 'status'], name='content_att_enrollm_c52e90_idx'),
        ]

    def __str__(self):
        return f"Attempt {self.attempt_number} - {self.learner} - {self.content.title} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def has_scorm_data(self):
        return bool(self.scorm_version)

    def touch(self, now=None):
        self.last_accessed_at = now or timezone.now()
