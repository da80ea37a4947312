"""Tests for the checkin command line interface."""

import csv
import io

import pytest
from openpyxl import load_workbook

from attendance import ColumnMapping
from attendance.verification import CheckInSession
from checkin import describe_result, main, read_scans, run_session


class TestReadScans:
    """Tests for scan input parsing."""

    def test_blank_lines_skipped_tabs_kept(self):
        stream = io.StringIO('A1\n\n  \nB2\tBob\r\n')
        assert list(read_scans(stream)) == ['A1', 'B2\tBob']


class TestDescribeResult:
    """Tests for operator-facing output."""

    def test_success_line(self, sample_roster):
        mapping = ColumnMapping(
            id='Ticket ID', name='Full Name', team='Team Name', payment='Payment Status',
        )
        session = CheckInSession(sample_roster, mapping)
        line = describe_result(session.verify('T-100'), session.mapping)
        assert line.startswith('SUCCESS')
        assert 'Alice Archer' in line
        assert 'Team: Galactic Gladiators' in line
        assert 'Zahlung: PAID' in line

    def test_not_found_line(self, session):
        line = describe_result(session.verify('Z9'), session.mapping)
        assert line == 'NOT_FOUND  Z9  ID not found in list.'

    def test_duplicate_line(self, session):
        session.verify('A1')
        line = describe_result(session.verify('A1'), session.mapping)
        assert 'Alice' in line
        assert 'Already verified.' in line

    def test_run_session(self, session):
        out = io.StringIO()
        run_session(session, ['A1', 'A1'], out)
        assert len(out.getvalue().splitlines()) == 2


class TestMain:
    """End-to-end runs of the CLI."""

    def test_full_run(self, tmp_path, data_dir, capsys):
        scans = tmp_path / 'scans.txt'
        scans.write_text('T-100\nbob@example.com\n102\nT-100\nunknown\n', encoding='utf-8')
        output = tmp_path / 'out' / 'attendance.csv'

        main([
            '--roster', str(data_dir / 'sample_roster.csv'),
            '--scans', str(scans),
            '--output', str(output),
            '--html', '--summary',
        ])

        with open(output, encoding='utf-8-sig', newline='') as f:
            rows = list(csv.DictReader(f, delimiter=';'))
        assert [r['Attendance Status'] for r in rows] == [
            'Present', 'Present', 'Present', 'Absent',
        ]
        assert output.with_suffix('.html').exists()

        out = capsys.readouterr().out
        assert 'DUPLICATE' in out
        assert 'NOT_FOUND' in out
        assert 'sample_roster.csv' in out

    def test_xlsx_output_by_suffix(self, tmp_path, data_dir):
        scans = tmp_path / 'scans.txt'
        scans.write_text('T-101\n', encoding='utf-8')
        output = tmp_path / 'sample_roster_Attendance.xlsx'

        main([
            '--roster', str(data_dir / 'sample_roster.csv'),
            '--scans', str(scans),
            '--output', str(output),
        ])

        ws = load_workbook(output)['Attendance Report']
        values = list(ws.iter_rows(values_only=True))
        assert values[0][-2:] == ('Attendance Status', 'Check-in Time')
        assert [v[-2] for v in values[1:]] == ['Absent', 'Present', 'Absent', 'Absent']

    def test_column_override(self, tmp_path, data_dir):
        scans = tmp_path / 'scans.txt'
        scans.write_text('Alice Archer\n', encoding='utf-8')
        output = tmp_path / 'attendance.csv'

        main([
            '--roster', str(data_dir / 'sample_roster.csv'),
            '--scans', str(scans),
            '--output', str(output),
            '--id-column', 'Full Name',
        ])

        with open(output, encoding='utf-8-sig', newline='') as f:
            rows = list(csv.DictReader(f, delimiter=';'))
        assert rows[0]['Attendance Status'] == 'Present'

    def test_unknown_override_column_exits(self, data_dir):
        with pytest.raises(SystemExit):
            main(['--roster', str(data_dir / 'sample_roster.csv'), '--id-column', 'Nope'])

    def test_missing_roster_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(['--roster', str(tmp_path / 'missing.csv'), '--scans', str(tmp_path / 'x')])
        assert exc_info.value.code == 1

    def test_html_requires_output(self, data_dir):
        with pytest.raises(SystemExit):
            main(['--roster', str(data_dir / 'sample_roster.csv'), '--html'])
