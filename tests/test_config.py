import tempfile
import unittest
from pathlib import Path

from station_scheduler import CafeConfigurationError, CafeProfile, EngineSettings, StationType, load_cafe_profiles, normalize_station_type
from station_scheduler.stations import parse_capacities, unit_label


class TestStationTypes(unittest.TestCase):
    def test_aliases_resolve_to_one_type(self) -> None:
        for name in ["steering_wheel", "steering", "Racing Setup", "racing", "STEERING WHEEL", "steering_wheel_count"]:
            with self.subTest(name=name):
                self.assertEqual(normalize_station_type(name), StationType.STEERING_WHEEL)
        self.assertEqual(normalize_station_type("PS5"), StationType.PS5)
        self.assertEqual(normalize_station_type("Pool Table"), StationType.POOL)

    def test_unknown_station_raises(self) -> None:
        for name in ["", "jukebox", None]:
            with self.subTest(name=name):
                with self.assertRaises(ValueError):
                    normalize_station_type(name)

    def test_unit_labels(self) -> None:
        self.assertEqual(unit_label(StationType.PS5, 1), "ps5-01")
        self.assertEqual(unit_label(StationType.STEERING_WHEEL, 12), "steering_wheel-12")
        self.assertEqual(StationType.STEERING_WHEEL.label, "Racing Setup")


class TestCafeProfile(unittest.TestCase):
    def test_capacities_are_validated(self) -> None:
        self.assertEqual(parse_capacities({"ps5": 5})[StationType.PS5], 5)
        self.assertEqual(parse_capacities({"ps5": 5})[StationType.VR], 0)
        for raw in [{"ps5": -1}, {"ps5": 2.5}, {"ps5": "3"}, {"ps5": True}, {"jukebox": 1}]:
            with self.subTest(raw=raw):
                with self.assertRaises(CafeConfigurationError):
                    parse_capacities(raw)

    def test_opening_hours(self) -> None:
        default = CafeProfile.from_dict({"cafe_id": "a", "capacity": {"ps5": 1}})
        self.assertEqual((default.open_minute, default.close_minute), (600, 1440))

        late = CafeProfile.from_dict({"cafe_id": "b", "opening": "4:00 pm", "closing": "3:00 am"})
        self.assertEqual(late.close_minute, 27 * 60)

        with self.assertRaises(CafeConfigurationError):
            CafeProfile.from_dict({"cafe_id": "c", "opening": "ten"})
        with self.assertRaises(CafeConfigurationError):
            CafeProfile.from_dict({"name": "no id"})
        with self.assertRaises(CafeConfigurationError):
            CafeProfile.from_dict({"cafe_id": "d", "pricing": {"ps5": {9: {60: 100}}}})

    def test_load_cafe_profiles_from_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "cafes.yaml"
            path.write_text(
                "- cafe_id: pixel-den\n"
                "  name: Pixel Den\n"
                "  opening: '11:00 am'\n"
                "  closing: '11:00 pm'\n"
                "  capacity:\n"
                "    PS5: 3\n"
                "    steering: 1\n"
                "  pricing:\n"
                "    ps5:\n"
                "      1: {30: 60, 60: 100}\n",
                encoding="utf-8",
            )
            profiles = load_cafe_profiles(path)

            den = profiles["pixel-den"]
            self.assertEqual(den.capacity_for(StationType.PS5), 3)
            self.assertEqual(den.capacity_for(StationType.STEERING_WHEEL), 1)
            self.assertEqual(den.close_minute, 23 * 60)
            self.assertEqual(den.pricing.get(StationType.PS5, 1, 30), 60)

    def test_engine_settings(self) -> None:
        settings = EngineSettings.from_dict({"scan_step_minutes": 10, "unknown": 1})
        self.assertEqual(settings.scan_step_minutes, 10)
        self.assertEqual(settings.ending_soon_minutes, 15)
        self.assertTrue(settings.allow_unpriced)
        with self.assertRaises(ValueError):
            EngineSettings(scan_step_minutes=0)


if __name__ == "__main__":
    unittest.main()
