#!/usr/bin/env python3
"""
Unit tests for the culler_app/services layer.

Run with:
    python -m pytest tests/test_services.py
"""
import json
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from culler_app.errors import (
    EmptySelection, ExportFailure, InvalidInput, RequiresConfirmation,
)
from culler_app.repositories import DocumentRepository, SnapshotRepository
from culler_app.services import (
    DirectoryCandidateSource, ProjectService, RoundService, is_image_file,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FAKE_IMAGES = ['a.png', 'b.jpg']


class TmpDirMixin(unittest.TestCase):
    """Creates a temp data dir plus an image folder for each test."""

    images = FAKE_IMAGES

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.image_dir = os.path.join(self.tmp, 'images')
        os.makedirs(self.image_dir)
        for name in self.images:
            with open(os.path.join(self.image_dir, name), 'wb') as f:
                f.write(b'\x89PNG fake')
        self.repo = DocumentRepository(os.path.join(self.tmp, 'projects.json'),
                                       default_source_dir=self.image_dir)
        self.projects = ProjectService(self.repo)
        self.rounds = RoundService(self.repo, DirectoryCandidateSource(),
                                   SnapshotRepository())
        self.project = self.projects.get_active()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _reload(self) -> DocumentRepository:
        return DocumentRepository(os.path.join(self.tmp, 'projects.json'))


# ===========================================================================
# DirectoryCandidateSource
# ===========================================================================

class TestDirectoryCandidateSource(TmpDirMixin):

    images = ['b.JPG', 'a.png', 'c.webp', 'notes.txt', 'd.Jpeg', 'e.bmp', 'f.gif']

    def test_filters_to_images_sorted(self):
        self.assertEqual(
            DirectoryCandidateSource().list_candidates(self.image_dir),
            ['a.png', 'b.JPG', 'c.webp', 'd.Jpeg', 'e.bmp', 'f.gif'])

    def test_ignores_directories_with_image_names(self):
        os.makedirs(os.path.join(self.image_dir, 'folder.png'))
        self.assertNotIn('folder.png',
                         DirectoryCandidateSource().list_candidates(self.image_dir))

    def test_missing_directory_returns_empty(self):
        self.assertEqual(
            DirectoryCandidateSource().list_candidates(os.path.join(self.tmp, 'nope')), [])

    def test_empty_path_returns_empty(self):
        self.assertEqual(DirectoryCandidateSource().list_candidates(''), [])

    def test_listdir_error_returns_empty(self):
        with patch('os.listdir', side_effect=PermissionError('denied')):
            self.assertEqual(
                DirectoryCandidateSource().list_candidates(self.image_dir), [])

    def test_resolve_existing_file(self):
        path = DirectoryCandidateSource().resolve_file(self.image_dir, 'a.png')
        self.assertEqual(path, os.path.realpath(os.path.join(self.image_dir, 'a.png')))

    def test_resolve_missing_file(self):
        self.assertIsNone(DirectoryCandidateSource().resolve_file(self.image_dir, 'zz.png'))

    def test_resolve_rejects_traversal(self):
        with open(os.path.join(self.tmp, 'secret.png'), 'wb') as f:
            f.write(b'x')
        self.assertIsNone(
            DirectoryCandidateSource().resolve_file(self.image_dir, '../secret.png'))

    def test_is_image_file(self):
        self.assertTrue(is_image_file('x.WEBP'))
        self.assertFalse(is_image_file('x.tiff'))
        self.assertFalse(is_image_file('png'))


# ===========================================================================
# ProjectService
# ===========================================================================

class TestProjectService(TmpDirMixin):

    def test_default_project_is_active(self):
        self.assertEqual(self.project['id'], 'default')

    def test_dangling_active_id_falls_back_to_first(self):
        self.projects.create('Second', self.image_dir)
        self.repo.data['activeProjectId'] = 'missing'
        project = self.projects.get_active()
        self.assertEqual(project['id'], 'default')
        self.assertEqual(self.repo.data['activeProjectId'], 'default')
        self.assertEqual(self._reload().data['activeProjectId'], 'default')

    def test_no_projects_returns_none(self):
        self.repo.data['projects'] = []
        self.assertIsNone(self.projects.get_active())

    def test_create_sets_defaults_and_activates(self):
        project = self.projects.create('Trip', '/photos/trip')
        self.assertEqual(project['name'], 'Trip')
        self.assertEqual(project['sourceDirectory'], '/photos/trip')
        self.assertEqual(project['currentRound'], 1)
        self.assertEqual(project['roundSelections'], {})
        self.assertEqual(project['lastViewedFile'], '')
        self.assertEqual(self.repo.data['activeProjectId'], project['id'])
        self.assertEqual(self._reload().data['activeProjectId'], project['id'])

    def test_create_falls_back_for_blank_fields(self):
        project = self.projects.create('  ', '')
        self.assertEqual(project['name'], 'New Project')
        self.assertEqual(project['sourceDirectory'], self.image_dir)

    def test_create_generates_unique_ids(self):
        a = self.projects.create('A')
        b = self.projects.create('B')
        self.assertNotEqual(a['id'], b['id'])

    def test_switch_active(self):
        other = self.projects.create('Other')
        self.assertTrue(self.projects.switch_active('default'))
        self.assertEqual(self.projects.get_active()['id'], 'default')
        self.assertTrue(self.projects.switch_active(other['id']))
        self.assertEqual(self.projects.get_active()['id'], other['id'])

    def test_switch_to_unknown_is_noop(self):
        self.assertFalse(self.projects.switch_active('nope'))
        self.assertEqual(self.repo.data['activeProjectId'], 'default')

    def test_delete_last_project_rejected(self):
        self.assertFalse(self.projects.delete('default'))
        self.assertEqual(len(self.repo.data['projects']), 1)

    def test_delete_active_reassigns_to_first(self):
        other = self.projects.create('Other')
        self.assertTrue(self.projects.delete(other['id']))
        self.assertEqual(self.repo.data['activeProjectId'], 'default')
        self.assertIsNone(self.projects.find(other['id']))

    def test_delete_first_while_active(self):
        other = self.projects.create('Other')
        self.projects.switch_active('default')
        self.assertTrue(self.projects.delete('default'))
        self.assertEqual(self.repo.data['activeProjectId'], other['id'])

    def test_delete_inactive_keeps_active(self):
        other = self.projects.create('Other')
        self.assertTrue(self.projects.delete('default'))
        self.assertEqual(self.repo.data['activeProjectId'], other['id'])

    def test_delete_unknown_returns_false(self):
        self.projects.create('Other')
        self.assertFalse(self.projects.delete('nope'))
        self.assertEqual(len(self.repo.data['projects']), 2)

    def test_update_settings(self):
        self.assertTrue(self.projects.update_settings('keepers', '/new/dir'))
        project = self._reload().data['projects'][0]
        self.assertEqual(project['auxiliaryLabel'], 'keepers')
        self.assertEqual(project['sourceDirectory'], '/new/dir')

    def test_update_settings_without_active_project(self):
        self.repo.data['projects'] = []
        self.assertFalse(self.projects.update_settings('x', '/y'))

    def test_rename(self):
        self.assertTrue(self.projects.rename('default', 'Renamed'))
        self.assertEqual(self.projects.find('default')['name'], 'Renamed')
        self.assertFalse(self.projects.rename('default', ' '))
        self.assertFalse(self.projects.rename('nope', 'X'))

    def test_list_projects_marks_active(self):
        other = self.projects.create('Other')
        listing = self.projects.list_projects()
        self.assertEqual([p['id'] for p in listing], ['default', other['id']])
        self.assertEqual([p['active'] for p in listing], [False, True])


# ===========================================================================
# RoundService
# ===========================================================================

class TestRoundCandidates(TmpDirMixin):

    def test_round_one_lists_directory(self):
        self.assertEqual(self.rounds.resolve_candidates(self.project), ['a.png', 'b.jpg'])

    def test_later_round_uses_previous_selections(self):
        self.project['sourceDirectory'] = os.path.join(self.tmp, 'gone')
        self.project['currentRound'] = 3
        self.project['roundSelections'] = {'2': ['z.png', 'y.png']}
        self.assertEqual(self.rounds.resolve_candidates(self.project), ['z.png', 'y.png'])

    def test_float_round_on_disk_keeps_its_data(self):
        path = os.path.join(self.tmp, 'float.json')
        with open(path, 'w', encoding='utf-8') as f:
            json.dump({'activeProjectId': 'p', 'projects': [{
                'id': 'p', 'name': 'P', 'sourceDirectory': self.image_dir,
                'currentRound': 2.0,
                'roundSelections': {'1': ['x.png'], '2': ['x.png']},
            }]}, f)
        repo = DocumentRepository(path)
        rounds = RoundService(repo, DirectoryCandidateSource())
        project = ProjectService(repo).get_active()
        self.assertEqual(rounds.resolve_candidates(project), ['x.png'])
        self.assertEqual(rounds.current_selections(project), ['x.png'])
        self.assertFalse(rounds.toggle_selection(project, 'x.png'))
        self.assertEqual(sorted(project['roundSelections']), ['1', '2'])

    def test_later_round_without_previous_data_is_empty(self):
        self.project['currentRound'] = 4
        self.assertEqual(self.rounds.resolve_candidates(self.project), [])

    def test_current_selections_created_lazily(self):
        self.assertNotIn('1', self.project['roundSelections'])
        self.assertEqual(self.rounds.current_selections(self.project), [])
        self.assertIn('1', self.project['roundSelections'])

    def test_max_round(self):
        self.project['roundSelections'] = {'1': ['a'], '4': []}
        self.assertEqual(self.rounds.max_round(self.project), 4)
        self.project['currentRound'] = 6
        self.assertEqual(self.rounds.max_round(self.project), 6)

    def test_round_summary_sorted(self):
        self.project['roundSelections'] = {'10': ['a'], '2': ['a', 'b'], '1': []}
        self.assertEqual(self.rounds.round_summary(self.project), [
            {'round': 1, 'count': 0},
            {'round': 2, 'count': 2},
            {'round': 10, 'count': 1},
        ])

    def test_stale_selections(self):
        self.project['roundSelections'] = {'1': ['a.png', 'gone.png']}
        self.assertEqual(self.rounds.stale_selections(self.project), ['gone.png'])
        # Reporting never removes anything.
        self.assertEqual(self.project['roundSelections']['1'], ['a.png', 'gone.png'])


class TestToggleSelection(TmpDirMixin):

    def test_toggle_adds_then_removes(self):
        self.assertTrue(self.rounds.toggle_selection(self.project, 'a.png'))
        self.assertEqual(self.rounds.current_selections(self.project), ['a.png'])
        self.assertFalse(self.rounds.toggle_selection(self.project, 'a.png'))
        self.assertEqual(self.rounds.current_selections(self.project), [])

    def test_double_toggle_preserves_order(self):
        self.project['roundSelections']['1'] = ['c.png', 'a.png']
        self.rounds.toggle_selection(self.project, 'b.jpg')
        self.rounds.toggle_selection(self.project, 'b.jpg')
        self.assertEqual(self.project['roundSelections']['1'], ['c.png', 'a.png'])

    def test_remove_keeps_relative_order(self):
        self.project['roundSelections']['1'] = ['x', 'y', 'z']
        self.rounds.toggle_selection(self.project, 'y')
        self.assertEqual(self.project['roundSelections']['1'], ['x', 'z'])

    def test_toggle_persists(self):
        self.rounds.toggle_selection(self.project, 'a.png')
        self.assertEqual(self._reload().data['projects'][0]['roundSelections'],
                         {'1': ['a.png']})

    def test_empty_filename_rejected(self):
        with patch.object(self.repo, 'save') as save:
            with self.assertRaises(InvalidInput):
                self.rounds.toggle_selection(self.project, '')
        save.assert_not_called()

    def test_toggle_outside_candidates_is_accepted(self):
        self.assertTrue(self.rounds.toggle_selection(self.project, 'not-listed.png'))


class TestResolveViewedFile(TmpDirMixin):

    def test_empty_picks_first_candidate(self):
        self.assertEqual(self.rounds.resolve_viewed_file(self.project), 'a.png')
        self.assertEqual(self._reload().data['projects'][0]['lastViewedFile'], 'a.png')

    def test_valid_stored_file_kept(self):
        self.project['lastViewedFile'] = 'b.jpg'
        self.assertEqual(self.rounds.resolve_viewed_file(self.project), 'b.jpg')

    def test_non_candidate_replaced_by_first(self):
        self.project['lastViewedFile'] = 'gone.png'
        self.assertEqual(self.rounds.resolve_viewed_file(self.project), 'a.png')
        self.assertEqual(self.project['lastViewedFile'], 'a.png')

    def test_cleared_when_no_candidates(self):
        self.project['currentRound'] = 2
        self.project['lastViewedFile'] = 'a.png'
        self.assertEqual(self.rounds.resolve_viewed_file(self.project), '')
        self.assertEqual(self.project['lastViewedFile'], '')

    def test_explicit_request_stored_without_check(self):
        self.assertEqual(self.rounds.resolve_viewed_file(self.project, 'other.png'),
                         'other.png')
        self.assertEqual(self._reload().data['projects'][0]['lastViewedFile'], 'other.png')


class TestExportRoundSnapshot(TmpDirMixin):

    def test_writes_current_round(self):
        self.rounds.toggle_selection(self.project, 'b.jpg')
        path = self.rounds.export_round_snapshot(self.project)
        self.assertEqual(os.path.basename(path), 'selection_round_1.json')
        with open(path, encoding='utf-8') as f:
            self.assertEqual(json.load(f), {'round': 1, 'selections': ['b.jpg']})

    def test_round_without_data_exports_empty(self):
        self.project['currentRound'] = 3
        path = self.rounds.export_round_snapshot(self.project)
        with open(path, encoding='utf-8') as f:
            self.assertEqual(json.load(f), {'round': 3, 'selections': []})

    def test_missing_directory_raises(self):
        self.project['sourceDirectory'] = os.path.join(self.tmp, 'gone')
        with self.assertRaises(ExportFailure):
            self.rounds.export_round_snapshot(self.project)


class TestAdvanceRound(TmpDirMixin):

    def test_scenario_a(self):
        self.assertTrue(self.rounds.toggle_selection(self.project, 'a.png'))
        self.assertEqual(self.rounds.current_selections(self.project), ['a.png'])
        self.assertEqual(self.rounds.advance_round(self.project), 2)
        self.assertEqual(self.project['currentRound'], 2)
        self.assertEqual(self.rounds.resolve_candidates(self.project), ['a.png'])

    def test_empty_selection_guard(self):
        with patch.object(self.repo, 'save') as save:
            with self.assertRaises(EmptySelection):
                self.rounds.advance_round(self.project)
            with self.assertRaises(EmptySelection):
                self.rounds.advance_round(self.project, force=True)
        save.assert_not_called()
        self.assertEqual(self.project['currentRound'], 1)

    def test_scenario_b(self):
        self.project['currentRound'] = 2
        self.project['roundSelections'] = {'1': ['c.png'], '2': ['c.png'], '3': ['x.png']}
        with self.assertRaises(RequiresConfirmation) as ctx:
            self.rounds.advance_round(self.project, force=False)
        self.assertEqual(ctx.exception.next_round, 3)
        self.assertEqual(self.project['roundSelections']['3'], ['x.png'])
        self.assertEqual(self.project['currentRound'], 2)

        self.assertEqual(self.rounds.advance_round(self.project, force=True), 3)
        self.assertEqual(self.project['roundSelections']['3'], [])
        self.assertEqual(self.project['currentRound'], 3)

    def test_force_only_clears_next_round(self):
        self.project['roundSelections'] = {'1': ['a.png'], '2': ['a.png'], '3': ['a.png']}
        self.rounds.advance_round(self.project, force=True)
        self.assertEqual(self.project['roundSelections']['2'], [])
        self.assertEqual(self.project['roundSelections']['3'], ['a.png'])

    def test_empty_next_round_needs_no_confirmation(self):
        self.project['roundSelections'] = {'1': ['a.png'], '2': []}
        self.assertEqual(self.rounds.advance_round(self.project), 2)

    def test_advance_clears_last_viewed_and_persists(self):
        self.rounds.toggle_selection(self.project, 'a.png')
        self.project['lastViewedFile'] = 'a.png'
        self.rounds.advance_round(self.project)
        saved = self._reload().data['projects'][0]
        self.assertEqual(saved['currentRound'], 2)
        self.assertEqual(saved['lastViewedFile'], '')


class TestSwitchRound(TmpDirMixin):

    def test_scenario_c(self):
        self.assertEqual(self.rounds.switch_round(self.project, 5), 5)
        self.assertEqual(self.project['currentRound'], 5)
        self.assertEqual(self.rounds.resolve_candidates(self.project), [])

    def test_jump_uses_previous_round_data(self):
        self.project['roundSelections'] = {'4': ['q.png']}
        self.rounds.switch_round(self.project, 5)
        self.assertEqual(self.rounds.resolve_candidates(self.project), ['q.png'])

    def test_backward_jump_clears_last_viewed(self):
        self.project['currentRound'] = 3
        self.project['lastViewedFile'] = 'a.png'
        self.rounds.switch_round(self.project, '1')
        self.assertEqual(self.project['currentRound'], 1)
        self.assertEqual(self.project['lastViewedFile'], '')

    def test_invalid_rounds_rejected(self):
        for bad in (0, -2, 'abc', None):
            with self.assertRaises(InvalidInput):
                self.rounds.switch_round(self.project, bad)
        self.assertEqual(self.project['currentRound'], 1)


if __name__ == '__main__':
    unittest.main()
