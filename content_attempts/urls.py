from django.urls import path

from . import views

app_name = 'content_attempts'

urlpatterns = [
    path('content-attempts', views.attempt_collection, name='attempt_collection'),
    path('content-attempts/<uuid:attempt_id>', views.attempt_detail, name='attempt_detail'),
    path('content-attempts/<uuid:attempt_id>/complete', views.complete_attempt, name='complete_attempt'),
    path('content-attempts/<uuid:attempt_id>/cmi', views.attempt_cmi, name='attempt_cmi'),
    path('content-attempts/<uuid:attempt_id>/suspend', views.suspend_attempt, name='suspend_attempt'),
    path('content-attempts/<uuid:attempt_id>/resume', views.resume_attempt, name='resume_attempt'),
    path('content-attempts/<uuid:attempt_id>/abandon', views.abandon_attempt, name='abandon_attempt'),
]
