"""
Tests for the content attempt JSON API.
"""

import json

from django.test import Client, TestCase
from django.urls import reverse

from content_attempts.models import ContentAttempt
from content_attempts.state_machine import AttemptStateMachine

from .base import AttemptFixturesMixin


class AttemptApiTestCase(AttemptFixturesMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.client = Client()
        self.client.force_login(self.learner)

    def url(self, name, attempt=None):
        if attempt is None:
            return reverse(f'content_attempts:{name}')
        return reverse(f'content_attempts:{name}', args=[attempt.pk])

    def send(self, method, url, body=None):
        return getattr(self.client, method)(
            url, data=json.dumps(body or {}), content_type='application/json'
        )


class CreateAndListTestCase(AttemptApiTestCase):

    def test_create_returns_attempt_with_launch_url(self):
        response = self.send('post', self.url('attempt_collection'), {
            'contentId': str(self.scorm12.pk),
            'enrollmentId': 'enr-9',
        })
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertTrue(payload['success'])
        data = payload['data']
        self.assertEqual(data['status'], 'started')
        self.assertEqual(data['attemptNumber'], 1)
        self.assertEqual(data['enrollmentId'], 'enr-9')
        self.assertEqual(data['progressPercent'], 0)
        self.assertIn(f"?attempt={data['id']}", data['launchUrl'])

    def test_duplicate_active_attempt_conflicts(self):
        self.start()
        response = self.send('post', self.url('attempt_collection'), {'contentId': str(self.scorm12.pk)})
        self.assertEqual(response.status_code, 409)
        payload = response.json()
        self.assertFalse(payload['success'])
        self.assertEqual(payload['type'], 'conflict')

    def test_create_validation(self):
        response = self.send('post', self.url('attempt_collection'), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['type'], 'validation_error')

        response = self.send('post', self.url('attempt_collection'), {'contentId': 'not-a-uuid'})
        self.assertEqual(response.status_code, 404)

    def test_invalid_json(self):
        response = self.client.post(
            self.url('attempt_collection'), data='{broken', content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)

    def test_anonymous_request_is_rejected(self):
        response = Client().get(self.url('attempt_collection'))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['type'], 'authentication_required')

    def test_list_is_paginated_and_scoped_to_learner(self):
        for _ in range(3):
            self.start(allow_concurrent=True)
        self.start(learner=self.other_learner)

        response = self.client.get(self.url('attempt_collection'), {'limit': 2})
        payload = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(payload['data']['attempts']), 2)
        self.assertEqual(payload['data']['pagination'], {
            'page': 1, 'limit': 2, 'total': 3, 'totalPages': 2, 'hasNext': True, 'hasPrev': False,
        })

        response = self.client.get(self.url('attempt_collection'), {'limit': 2, 'page': 5})
        self.assertEqual(response.json()['data']['attempts'], [])

    def test_list_filters(self):
        self.start(enrollment_id='e-1')
        self.start(self.video, enrollment_id='e-2')

        response = self.client.get(self.url('attempt_collection'), {'contentId': str(self.video.pk)})
        self.assertEqual([a['contentId'] for a in response.json()['data']['attempts']], [str(self.video.pk)])

        response = self.client.get(self.url('attempt_collection'), {'enrollmentId': 'e-1'})
        self.assertEqual(len(response.json()['data']['attempts']), 1)

        response = self.client.get(self.url('attempt_collection'), {'status': 'completed'})
        self.assertEqual(response.json()['data']['attempts'], [])

    def test_staff_sees_all_attempts(self):
        self.start()
        self.start(learner=self.other_learner)
        self.client.force_login(self.staff)
        response = self.client.get(self.url('attempt_collection'))
        self.assertEqual(response.json()['data']['pagination']['total'], 2)


class AttemptDetailTestCase(AttemptApiTestCase):

    def test_get_with_and_without_cmi(self):
        attempt = self.start()
        data = self.client.get(self.url('attempt_detail', attempt)).json()['data']
        self.assertNotIn('cmiData', data)
        data = self.client.get(self.url('attempt_detail', attempt), {'includeCmi': 'true'}).json()['data']
        self.assertEqual(data['cmiData']['cmi.core.entry'], 'ab-initio')

    def test_detail_carries_launch_reference_and_relaunch_snapshot(self):
        attempt = self.start_in_progress()
        attempt = AttemptStateMachine(attempt).update(location='slide-5')
        data = self.client.get(self.url('attempt_detail', attempt), {'includeCmi': 'true'}).json()['data']
        self.assertEqual(data['launchUrl'], f'/scorm/{self.scorm12.pk}/launch?attempt={attempt.pk}')
        self.assertEqual(data['cmiData']['cmi.core.entry'], 'resume')
        self.assertEqual(data['cmiData']['cmi.core.lesson_location'], 'slide-5')

        stored = self.client.get(self.url('attempt_cmi', attempt)).json()['data']['cmiData']
        self.assertEqual(stored['cmi.core.lesson_location'], 'slide-5')

        video = self.start(self.video)
        data = self.client.get(self.url('attempt_detail', video)).json()['data']
        self.assertIsNone(data['launchUrl'])

    def test_other_learners_attempt_is_not_found(self):
        attempt = self.start(learner=self.other_learner)
        response = self.client.get(self.url('attempt_detail', attempt))
        self.assertEqual(response.status_code, 404)

    def test_patch_returns_lightweight_projection(self):
        attempt = self.start()
        response = self.send('patch', self.url('attempt_detail', attempt), {
            'progressPercent': 45.5,
            'timeSpentSeconds': 200,
            'sessionTime': '00:03:00',
        })
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(
            set(data),
            {'id', 'status', 'progressPercent', 'score', 'timeSpentSeconds',
             'lastAccessedAt', 'completedAt', 'updatedAt', 'version'}
        )
        self.assertEqual(data['status'], 'in-progress')
        self.assertEqual(data['progressPercent'], 45.5)
        self.assertEqual(data['timeSpentSeconds'], 200)
        self.assertEqual(data['version'], 2)

    def test_patch_rejects_unknown_and_invalid_fields(self):
        attempt = self.start()
        response = self.send('patch', self.url('attempt_detail', attempt), {'status': 'passed'})
        self.assertEqual(response.status_code, 400)
        response = self.send('patch', self.url('attempt_detail', attempt), {'progressPercent': 120})
        self.assertEqual(response.status_code, 400)
        self.assertIn('progressPercent', response.json()['errors'])

    def test_patch_terminal_attempt_conflicts(self):
        attempt = self.start()
        self.send('post', self.url('complete_attempt', attempt), {})
        response = self.send('patch', self.url('attempt_detail', attempt), {'progressPercent': 10})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['type'], 'invalid_state')

    def test_patch_with_stale_version(self):
        attempt = self.start()
        self.send('patch', self.url('attempt_detail', attempt), {'progressPercent': 10})
        response = self.send('patch', self.url('attempt_detail', attempt), {
            'progressPercent': 20, 'expectedVersion': 1
        })
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['type'], 'conflict')

    def test_method_not_allowed(self):
        attempt = self.start()
        response = self.send('put', self.url('attempt_detail', attempt), {})
        self.assertEqual(response.status_code, 405)


class LifecycleEndpointsTestCase(AttemptApiTestCase):

    def test_complete(self):
        attempt = self.start(self.scorm2004)
        response = self.send('post', self.url('complete_attempt', attempt), {
            'score': 91, 'scoreScaled': 0.91, 'passed': True, 'timeSpentSeconds': 900
        })
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['status'], 'passed')
        self.assertEqual(data['score'], 91)
        self.assertEqual(data['scoreRaw'], 91)
        self.assertEqual(data['scoreScaled'], 0.91)
        self.assertTrue(data['passed'])
        self.assertEqual(data['timeSpentSeconds'], 900)
        self.assertIsNotNone(data['certificate'])

        response = self.send('post', self.url('complete_attempt', attempt), {'passed': True})
        self.assertEqual(response.status_code, 409)

    def test_suspend_and_resume(self):
        attempt = self.start()
        self.send('patch', self.url('attempt_detail', attempt), {'progressPercent': 30})

        response = self.send('post', self.url('suspend_attempt', attempt), {
            'suspendData': 'page=3', 'location': '3', 'sessionTime': 95
        })
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['status'], 'suspended')
        self.assertEqual(data['suspendData'], 'page=3')
        self.assertEqual(data['timeSpentSeconds'], 95)

        response = self.send('post', self.url('resume_attempt', attempt))
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['status'], 'in-progress')
        self.assertEqual(data['cmiData']['cmi.core.entry'], 'resume')
        self.assertIn(f'?attempt={attempt.pk}', data['launchUrl'])

        response = self.send('post', self.url('resume_attempt', attempt))
        self.assertEqual(response.status_code, 409)

    def test_suspend_from_started_is_invalid(self):
        attempt = self.start()
        response = self.send('post', self.url('suspend_attempt', attempt), {})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['type'], 'invalid_state')

    def test_abandon_requires_staff(self):
        attempt = self.start()
        response = self.send('post', self.url('abandon_attempt', attempt), {'reason': 'withdrawn'})
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.staff)
        response = self.send('post', self.url('abandon_attempt', attempt), {'reason': 'withdrawn'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['status'], 'abandoned')


class CmiEndpointTestCase(AttemptApiTestCase):

    def test_get_snapshot(self):
        attempt = self.start()
        response = self.client.get(self.url('attempt_cmi', attempt))
        data = response.json()['data']
        self.assertEqual(data['attemptId'], str(attempt.pk))
        self.assertEqual(data['scormVersion'], '1.2')
        self.assertEqual(data['cmiData']['cmi.core.student_id'], str(self.learner.pk))
        self.assertIsNotNone(data['lastUpdated'])

    def test_non_scorm_attempt_has_no_snapshot(self):
        attempt = self.start(self.video)
        response = self.client.get(self.url('attempt_cmi', attempt))
        self.assertEqual(response.status_code, 404)

    def test_put_updates_fields(self):
        attempt = self.start()
        response = self.send('put', self.url('attempt_cmi', attempt), {
            'cmiData': {'cmi.core.lesson_location': '4', 'cmi.core.lesson_status': 'incomplete'}
        })
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['updatedFields'], ['cmi.core.lesson_location', 'cmi.core.lesson_status'])
        self.assertEqual(data['status'], 'in-progress')

    def test_put_read_only_field(self):
        attempt = self.start()
        response = self.send('put', self.url('attempt_cmi', attempt), {
            'cmiData': {'cmi.core.total_time': '10:00:00'}
        })
        self.assertEqual(response.status_code, 409)
        payload = response.json()
        self.assertEqual(payload['type'], 'read_only_field')
        self.assertEqual(payload['errors']['fields'], ['cmi.core.total_time'])

    def test_put_with_auto_commit(self):
        attempt = self.start()
        self.send('put', self.url('attempt_cmi', attempt), {
            'cmiData': {'cmi.core.lesson_status': 'completed'}, 'autoCommit': True
        })
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ContentAttempt.STATUS_COMPLETED)

    def test_put_requires_cmi_data(self):
        attempt = self.start()
        response = self.send('put', self.url('attempt_cmi', attempt), {})
        self.assertEqual(response.status_code, 400)


class DeleteEndpointTestCase(AttemptApiTestCase):

    def test_learner_cannot_delete(self):
        attempt = self.start()
        response = self.client.delete(self.url('attempt_detail', attempt))
        self.assertEqual(response.status_code, 403)

    def test_staff_soft_delete(self):
        attempt = self.start()
        self.client.force_login(self.staff)
        response = self.client.delete(self.url('attempt_detail', attempt))
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['id'], str(attempt.pk))
        self.assertTrue(data['deleted'])
        self.assertEqual(self.client.get(self.url('attempt_detail', attempt)).status_code, 404)

    def test_permanent_delete(self):
        attempt = self.start()
        self.client.force_login(self.staff)
        response = self.client.delete(self.url('attempt_detail', attempt) + '?permanent=true')
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.superuser)
        response = self.client.delete(self.url('attempt_detail', attempt) + '?permanent=true')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(ContentAttempt.all_objects.filter(pk=attempt.pk).exists())
