import json
import tempfile
import unittest
from pathlib import Path

from timetable_import.settings import (
    DEFAULT_SESSION_DURATION,
    ImportSettings,
    SectionTime,
    generate_section_times,
    load_settings,
    parse_section_times,
    save_settings,
)


class TestLoadSettings(unittest.TestCase):
    def test_missing_or_broken_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "settings.json"
            self.assertEqual(load_settings(p), ImportSettings())
            p.write_text("[1, 2", encoding="utf-8")
            self.assertEqual(load_settings(p), ImportSettings())
            p.write_text("[]", encoding="utf-8")
            self.assertEqual(load_settings(p), ImportSettings())

    def test_bad_values_fall_back_per_field(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "settings.json"
            p.write_text(json.dumps({"default_duration": "3", "total_weeks": 18}), encoding="utf-8")
            settings = load_settings(p)
            self.assertEqual(settings.default_duration, DEFAULT_SESSION_DURATION)
            self.assertEqual(settings.total_weeks, 18)

    def test_save_and_load_roundtrip(self) -> None:
        settings = ImportSettings(
            section_times=(SectionTime("08:00", "08:45"), SectionTime("08:55", "09:40")),
            default_duration=1,
            max_daily_sections=10,
            total_weeks=16,
        )
        with tempfile.TemporaryDirectory() as d:
            p = Path(d) / "conf" / "settings.json"
            save_settings(settings, p)
            self.assertEqual(load_settings(p), settings)

    def test_section_time_lookup(self) -> None:
        settings = ImportSettings(section_times=(SectionTime("08:00", "08:45"),))
        self.assertEqual(settings.section_time(1), SectionTime("08:00", "08:45"))
        self.assertIsNone(settings.section_time(0))
        self.assertIsNone(settings.section_time(2))


class TestSectionTimes(unittest.TestCase):
    def test_parse_compact_and_list_forms(self) -> None:
        expected = (SectionTime("08:00", "08:45"), SectionTime("08:55", "09:40"))
        self.assertEqual(parse_section_times("08:00,08:45|08:55,09:40"), expected)
        self.assertEqual(parse_section_times([["08:00", "08:45"], {"start": "08:55", "end": "09:40"}]), expected)

    def test_parse_skips_malformed_entries(self) -> None:
        parsed = parse_section_times([["08:00", "08:45"], ["25:00", "26:00"], ["09:00"], 5])
        self.assertEqual(parsed, (SectionTime("08:00", "08:45"),))
        self.assertEqual(parse_section_times(None), ())

    def test_generate_with_afternoon_restart(self) -> None:
        times = generate_section_times(4, 45, 10, afternoon_section=3, afternoon_start="14:00")
        self.assertEqual(
            [(t.start, t.end) for t in times],
            [("08:00", "08:45"), ("08:55", "09:40"), ("14:00", "14:45"), ("14:55", "15:40")],
        )

    def test_generate_rejects_bad_clock(self) -> None:
        with self.assertRaises(ValueError):
            generate_section_times(2, 45, 10, morning_start="8 o'clock")


if __name__ == "__main__":
    unittest.main()
