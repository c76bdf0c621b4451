"""
Tests for the attempt lifecycle.
"""

from decimal import Decimal
from unittest.mock import Mock

from django.test import TestCase

from content_attempts.exceptions import (
    ConflictError, ForbiddenError, InvalidStateError, ReadOnlyFieldError, ValidationError
)
from content_attempts.models import ContentAttempt
from content_attempts.signals import attempt_finalized
from content_attempts.state_machine import (
    AttemptStateMachine, abandon_active_attempts, build_cmi_snapshot, delete_attempt
)

from .base import AttemptFixturesMixin


class StartAttemptTestCase(AttemptFixturesMixin, TestCase):

    def test_first_attempt(self):
        result = AttemptStateMachine.start(self.learner, self.scorm12, enrollment_id='enr-1')
        attempt = result['attempt']
        self.assertEqual(attempt.status, ContentAttempt.STATUS_STARTED)
        self.assertEqual(attempt.attempt_number, 1)
        self.assertEqual(attempt.enrollment_id, 'enr-1')
        self.assertEqual(attempt.scorm_version, '1.2')
        self.assertEqual(attempt.version, 1)
        self.assertIsNotNone(attempt.started_at)
        self.assertEqual(result['launch_url'], f'/scorm/{self.scorm12.pk}/launch?attempt={attempt.pk}')
        self.assertEqual(attempt.cmi_data['cmi.core.student_id'], str(self.learner.pk))
        self.assertEqual(attempt.cmi_data['cmi.core.entry'], 'ab-initio')

    def test_content_launch_url_is_used(self):
        result = AttemptStateMachine.start(self.learner, self.scorm2004)
        self.assertEqual(
            result['launch_url'],
            f"/player/data-protection/index.html?attempt={result['attempt'].pk}"
        )

    def test_active_attempt_blocks_a_second_start(self):
        first = self.start()
        with self.assertRaises(ConflictError) as cm:
            self.start()
        self.assertEqual(cm.exception.errors['activeAttemptId'], str(first.pk))
        self.assertEqual(ContentAttempt.objects.count(), 1)

    def test_concurrent_attempts_when_explicitly_allowed(self):
        self.start()
        second = self.start(allow_concurrent=True)
        self.assertEqual(second.attempt_number, 2)

    def test_attempt_numbers_follow_finished_attempts(self):
        first = self.start()
        AttemptStateMachine(first).complete(passed=False)
        second = self.start()
        self.assertEqual(second.attempt_number, 2)

    def test_deleted_attempts_still_count(self):
        first = self.start()
        delete_attempt(first, self.staff)
        second = self.start()
        self.assertEqual(second.attempt_number, 2)

    def test_other_learners_do_not_interfere(self):
        self.start()
        other = self.start(learner=self.other_learner)
        self.assertEqual(other.attempt_number, 1)

    def test_media_attempt_has_no_launch_url(self):
        result = AttemptStateMachine.start(self.learner, self.video)
        self.assertIsNone(result['launch_url'])
        self.assertIsNone(result['attempt'].scorm_version)
        self.assertEqual(result['attempt'].cmi_data, {})

    def test_scorm_version_validation(self):
        with self.assertRaises(ValidationError):
            AttemptStateMachine.start(self.learner, self.scorm12, scorm_version='3.0')
        with self.assertRaises(ValidationError):
            AttemptStateMachine.start(self.learner, self.video, scorm_version='1.2')


class UpdateAttemptTestCase(AttemptFixturesMixin, TestCase):

    def test_first_update_moves_to_in_progress(self):
        attempt = self.start()
        attempt = AttemptStateMachine(attempt).update(progress_percent=40, location='slide-4')
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ContentAttempt.STATUS_IN_PROGRESS)
        self.assertEqual(attempt.progress_percent, Decimal('40'))
        self.assertEqual(attempt.location, 'slide-4')
        self.assertEqual(attempt.cmi_data['cmi.core.lesson_location'], 'slide-4')
        self.assertEqual(attempt.version, 2)

    def test_time_spent_never_decreases(self):
        attempt = self.start()
        machine = AttemptStateMachine(attempt)
        machine.update(time_spent_seconds=300)
        machine.update(time_spent_seconds=100)
        self.assertEqual(machine.attempt.time_spent_seconds, 300)
        machine.update(time_spent_seconds=420)
        self.assertEqual(machine.attempt.time_spent_seconds, 420)

    def test_session_time_is_added_to_launch_total(self):
        attempt = self.start()
        machine = AttemptStateMachine(attempt)
        machine.update(session_time_seconds=90)
        machine.update(session_time_seconds=60)
        self.assertEqual(machine.attempt.time_spent_seconds, 90)
        self.assertEqual(machine.attempt.session_time_seconds, 60)

    def test_suspended_attempt_stays_suspended(self):
        attempt = self.start_in_progress()
        machine = AttemptStateMachine(attempt)
        machine.suspend(suspend_data='page=2')
        machine.update(progress_percent=55)
        self.assertEqual(machine.attempt.status, ContentAttempt.STATUS_SUSPENDED)

    def test_terminal_attempt_rejects_updates(self):
        attempt = self.start()
        machine = AttemptStateMachine(attempt)
        machine.complete()
        with self.assertRaises(InvalidStateError):
            machine.update(progress_percent=20)

    def test_invalid_values_leave_attempt_untouched(self):
        attempt = self.start()
        machine = AttemptStateMachine(attempt)
        for kwargs in ({'progress_percent': 101}, {'progress_percent': -1}, {'score': 150},
                       {'time_spent_seconds': -3}, {'progress_percent': 'lots'}, {'location': 7}):
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ValidationError):
                    machine.update(**kwargs)
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ContentAttempt.STATUS_STARTED)
        self.assertEqual(attempt.version, 1)

    def test_scaled_score_only_for_scorm_2004(self):
        with self.assertRaises(ValidationError):
            AttemptStateMachine(self.start()).update(score_scaled=Decimal('0.5'))
        attempt = AttemptStateMachine(self.start(self.scorm2004)).update(score_scaled=0.5)
        self.assertEqual(attempt.score_scaled, Decimal('0.5'))
        self.assertEqual(attempt.cmi_data['cmi.score.scaled'], '0.5')
        with self.assertRaises(ValidationError):
            AttemptStateMachine(attempt).update(score_scaled=1.5)

    def test_suspend_data_length_limit(self):
        attempt = self.start()
        with self.assertRaises(ValidationError):
            AttemptStateMachine(attempt).update(suspend_data='x' * 4097)
        attempt = AttemptStateMachine(self.start(self.scorm2004)).update(suspend_data='x' * 4097)
        self.assertEqual(len(attempt.suspend_data), 4097)

    def test_stale_expected_version_is_rejected(self):
        attempt = self.start()
        machine = AttemptStateMachine(attempt)
        machine.update(progress_percent=10, expected_version=1)
        with self.assertRaises(ConflictError) as cm:
            machine.update(progress_percent=20, expected_version=1)
        self.assertTrue(cm.exception.refetch_required)
        self.assertEqual(cm.exception.errors['version'], 2)

    def test_rejected_transitions_are_logged_as_events(self):
        attempt = self.start()
        machine = AttemptStateMachine(attempt)
        with self.assertLogs('content_attempts.events', level='WARNING') as logs:
            with self.assertRaises(ConflictError):
                machine.update(progress_percent=10, expected_version=4)
            with self.assertRaises(InvalidStateError):
                machine.resume()
        self.assertEqual(len(logs.records), 2)
        self.assertIn('stale version', logs.output[0])
        self.assertIn('"expected_version": 4', logs.output[0])
        self.assertIn('resume not allowed', logs.output[1])
        self.assertIn(str(attempt.pk), logs.output[1])

    def test_media_position_drives_progress(self):
        attempt = self.start(self.video)
        attempt = AttemptStateMachine(attempt).update(current_time=150)
        self.assertEqual(attempt.progress_percent, Decimal('25.0'))
        self.assertEqual(attempt.location, '150')
        self.assertEqual(attempt.status, ContentAttempt.STATUS_IN_PROGRESS)

    def test_media_completes_at_threshold(self):
        attempt = self.start(self.video)
        attempt = AttemptStateMachine(attempt).update(current_time=575.4)
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ContentAttempt.STATUS_COMPLETED)
        self.assertEqual(attempt.progress_percent, Decimal('100'))
        self.assertIsNotNone(attempt.completed_at)

    def test_media_threshold_from_content(self):
        self.video.completion_threshold = Decimal('50')
        self.video.save()
        attempt = AttemptStateMachine(self.start(self.video)).update(current_time=300, duration=600)
        self.assertEqual(attempt.status, ContentAttempt.STATUS_COMPLETED)


class SuspendResumeTestCase(AttemptFixturesMixin, TestCase):

    def test_suspend_requires_in_progress(self):
        attempt = self.start()
        with self.assertRaises(InvalidStateError):
            AttemptStateMachine(attempt).suspend(suspend_data='page=1')

    def test_suspend_records_bookmark(self):
        attempt = self.start_in_progress()
        attempt = AttemptStateMachine(attempt).suspend(
            suspend_data='page=7;quiz=2', location='7', session_time_seconds=120
        )
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ContentAttempt.STATUS_SUSPENDED)
        self.assertEqual(attempt.suspend_data, 'page=7;quiz=2')
        self.assertEqual(attempt.location, '7')
        self.assertEqual(attempt.time_spent_seconds, 120)
        self.assertEqual(attempt.cmi_data['cmi.core.exit'], 'suspend')
        self.assertEqual(attempt.cmi_data['cmi.suspend_data'], 'page=7;quiz=2')

    def test_resume_requires_suspended(self):
        attempt = self.start_in_progress()
        with self.assertRaises(InvalidStateError):
            AttemptStateMachine(attempt).resume()

    def test_resume_reseeds_runtime(self):
        attempt = self.start_in_progress()
        machine = AttemptStateMachine(attempt)
        machine.suspend(suspend_data='page=7', location='7', session_time_seconds=120)
        result = machine.resume()

        attempt = result['attempt']
        self.assertEqual(attempt.status, ContentAttempt.STATUS_IN_PROGRESS)
        self.assertEqual(attempt.launch_time_spent_seconds, 120)
        self.assertEqual(attempt.session_time_seconds, 0)
        self.assertEqual(result['launch_url'], f'/scorm/{self.scorm12.pk}/launch?attempt={attempt.pk}')

        cmi = result['cmi_data']
        self.assertEqual(cmi['cmi.core.entry'], 'resume')
        self.assertEqual(cmi['cmi.core.lesson_location'], '7')
        self.assertEqual(cmi['cmi.suspend_data'], 'page=7')
        self.assertEqual(cmi['cmi.core.total_time'], '00:02:00')
        self.assertNotIn('cmi.core.session_time', cmi)
        self.assertNotIn('cmi.core.exit', cmi)

    def test_time_accumulates_across_launches(self):
        attempt = self.start_in_progress()
        machine = AttemptStateMachine(attempt)
        machine.suspend(session_time_seconds=120)
        machine.resume()
        machine.suspend(session_time_seconds=30)
        self.assertEqual(machine.attempt.time_spent_seconds, 150)

    def test_snapshot_is_derivable_from_attempt(self):
        attempt = self.start_in_progress()
        machine = AttemptStateMachine(attempt)
        machine.suspend(suspend_data='page=3', location='3')
        self.assertEqual(build_cmi_snapshot(machine.attempt)['cmi.suspend_data'], 'page=3')


class CompleteAttemptTestCase(AttemptFixturesMixin, TestCase):

    def test_passed(self):
        attempt = self.start_in_progress()
        attempt = AttemptStateMachine(attempt).complete(score=92, passed=True, time_spent_seconds=600)
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ContentAttempt.STATUS_PASSED)
        self.assertTrue(attempt.passed)
        self.assertEqual(attempt.score, Decimal('92'))
        self.assertEqual(attempt.score_raw, Decimal('92'))
        self.assertEqual(attempt.progress_percent, Decimal('100'))
        self.assertEqual(attempt.time_spent_seconds, 600)
        self.assertEqual(attempt.cmi_data['cmi.core.score.raw'], '92')
        self.assertIsNone(attempt.certificate_reference)

    def test_failed_and_completed(self):
        failed = AttemptStateMachine(self.start()).complete(score=40, passed=False)
        self.assertEqual(failed.status, ContentAttempt.STATUS_FAILED)
        completed = AttemptStateMachine(self.start(self.video)).complete()
        self.assertEqual(completed.status, ContentAttempt.STATUS_COMPLETED)
        self.assertIsNone(completed.passed)

    def test_completing_twice_conflicts(self):
        machine = AttemptStateMachine(self.start())
        machine.complete(passed=True)
        with self.assertRaises(ConflictError):
            machine.complete(passed=True)

    def test_complete_from_suspended(self):
        machine = AttemptStateMachine(self.start_in_progress())
        machine.suspend()
        self.assertEqual(machine.complete().status, ContentAttempt.STATUS_COMPLETED)

    def test_certificate_for_passed_attempt(self):
        attempt = AttemptStateMachine(self.start(self.scorm2004)).complete(score=88, passed=True)
        reference = attempt.certificate_reference
        self.assertTrue(reference['certificateId'].startswith('CERT-'))
        self.assertEqual(reference['attemptId'], str(attempt.pk))

    def test_no_certificate_for_failed_attempt(self):
        attempt = AttemptStateMachine(self.start(self.scorm2004)).complete(score=20, passed=False)
        self.assertIsNone(attempt.certificate_reference)

    def test_finalized_signal_sent_after_commit(self):
        receiver = Mock()
        attempt_finalized.connect(receiver, weak=False)
        self.addCleanup(attempt_finalized.disconnect, receiver)

        with self.captureOnCommitCallbacks(execute=True):
            attempt = AttemptStateMachine(self.start()).complete(passed=True)

        receiver.assert_called_once()
        self.assertEqual(receiver.call_args.kwargs['attempt'].pk, attempt.pk)

    def test_non_boolean_passed_is_rejected(self):
        with self.assertRaises(ValidationError):
            AttemptStateMachine(self.start()).complete(passed='yes')


class WriteCmiTestCase(AttemptFixturesMixin, TestCase):

    def test_read_only_write_rejects_whole_batch(self):
        attempt = self.start()
        with self.assertRaises(ReadOnlyFieldError) as cm:
            AttemptStateMachine(attempt).write_cmi({
                'cmi.core.lesson_location': '9',
                'cmi.core.student_id': 'hijack',
            })
        self.assertEqual(cm.exception.fields, ['cmi.core.student_id'])
        attempt.refresh_from_db()
        self.assertEqual(attempt.cmi_data['cmi.core.student_id'], str(self.learner.pk))
        self.assertNotIn('cmi.core.lesson_location', attempt.cmi_data)
        self.assertEqual(attempt.version, 1)

    def test_count_elements_are_read_only(self):
        with self.assertRaises(ReadOnlyFieldError):
            AttemptStateMachine(self.start()).write_cmi({'cmi.interactions._count': '3'})

    def test_unknown_field_is_rejected(self):
        with self.assertRaises(ValidationError):
            AttemptStateMachine(self.start()).write_cmi({'cmi.completion_status': 'completed'})

    def test_write_mirrors_attempt_columns(self):
        attempt = self.start()
        result = AttemptStateMachine(attempt).write_cmi({
            'cmi.core.lesson_location': 'slide-2',
            'cmi.suspend_data': 'page=2',
            'cmi.core.score.raw': '75',
            'cmi.core.session_time': '00:01:00',
            'cmi.core.lesson_status': 'incomplete',
        })
        attempt = result['attempt']
        self.assertEqual(result['updated_fields'][0], 'cmi.core.lesson_location')
        self.assertEqual(len(result['updated_fields']), 5)
        self.assertIsNotNone(result['last_updated'])
        self.assertEqual(attempt.status, ContentAttempt.STATUS_IN_PROGRESS)
        self.assertEqual(attempt.location, 'slide-2')
        self.assertEqual(attempt.suspend_data, 'page=2')
        self.assertEqual(attempt.score_raw, Decimal('75'))
        self.assertEqual(attempt.time_spent_seconds, 60)

    def test_auto_commit_completes_on_reported_outcome(self):
        attempt = self.start()
        result = AttemptStateMachine(attempt).write_cmi(
            {'cmi.core.lesson_status': 'passed', 'cmi.core.score.raw': '90'},
            auto_commit=True,
        )
        attempt = result['attempt']
        self.assertEqual(attempt.status, ContentAttempt.STATUS_PASSED)
        self.assertTrue(attempt.passed)
        self.assertEqual(attempt.score, Decimal('90'))

    def test_outcome_without_auto_commit_keeps_attempt_open(self):
        result = AttemptStateMachine(self.start()).write_cmi({'cmi.core.lesson_status': 'passed'})
        self.assertEqual(result['attempt'].status, ContentAttempt.STATUS_IN_PROGRESS)

    def test_scorm_2004_success_status(self):
        result = AttemptStateMachine(self.start(self.scorm2004)).write_cmi(
            {'cmi.completion_status': 'completed', 'cmi.success_status': 'failed', 'cmi.score.scaled': '0.4'},
            auto_commit=True,
        )
        attempt = result['attempt']
        self.assertEqual(attempt.status, ContentAttempt.STATUS_FAILED)
        self.assertEqual(attempt.score_scaled, Decimal('0.4'))

    def test_non_scorm_attempt_has_no_runtime(self):
        with self.assertRaises(ValidationError):
            AttemptStateMachine(self.start(self.video)).write_cmi({'cmi.location': 'x'})

    def test_terminal_attempt_rejects_cmi(self):
        machine = AttemptStateMachine(self.start())
        machine.complete()
        with self.assertRaises(InvalidStateError):
            machine.write_cmi({'cmi.core.lesson_location': '1'})


class AbandonAndDeleteTestCase(AttemptFixturesMixin, TestCase):

    def test_abandon(self):
        attempt = AttemptStateMachine(self.start()).abandon('withdrawn')
        self.assertEqual(attempt.status, ContentAttempt.STATUS_ABANDONED)
        self.assertTrue(attempt.is_terminal)
        with self.assertRaises(InvalidStateError):
            AttemptStateMachine(attempt).abandon()

    def test_abandon_active_attempts_for_enrollment(self):
        first = self.start(enrollment_id='e-1')
        second = self.start(self.scorm2004, enrollment_id='e-2')
        finished = self.start(self.video, enrollment_id='e-1')
        AttemptStateMachine(finished).complete()

        abandoned = abandon_active_attempts(self.learner, enrollment_id='e-1')

        self.assertEqual([a.pk for a in abandoned], [first.pk])
        second.refresh_from_db()
        finished.refresh_from_db()
        self.assertEqual(second.status, ContentAttempt.STATUS_STARTED)
        self.assertEqual(finished.status, ContentAttempt.STATUS_COMPLETED)

    def test_learner_cannot_delete(self):
        with self.assertRaises(ForbiddenError):
            delete_attempt(self.start(), self.learner)

    def test_staff_soft_delete(self):
        attempt = self.start()
        result = delete_attempt(attempt, self.staff)
        self.assertTrue(result['deleted'])
        self.assertFalse(ContentAttempt.objects.filter(pk=attempt.pk).exists())
        self.assertTrue(ContentAttempt.all_objects.get(pk=attempt.pk).is_deleted)

    def test_permanent_delete_requires_superuser(self):
        attempt = self.start()
        with self.assertRaises(ForbiddenError):
            delete_attempt(attempt, self.staff, permanent=True)
        delete_attempt(attempt, self.superuser, permanent=True)
        self.assertFalse(ContentAttempt.all_objects.filter(pk=attempt.pk).exists())
