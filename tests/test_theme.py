"""
Tests for theme settings, palettes and builder pages.
"""

from unittest.mock import MagicMock

from pymongo.errors import PyMongoError

import theme


class TestThemeSettings:
    def test_defaults_when_nothing_stored(self, db):
        settings = theme.get_theme_settings(db)
        assert settings == theme.DEFAULT_SETTINGS
        settings["menuItems"].append({"label": "Mutated", "href": "/x"})
        assert len(theme.DEFAULT_SETTINGS["menuItems"]) == 2

    def test_update_merges_with_defaults(self, db):
        theme.update_theme_settings(db, {"palette": "forest", "headerType": "centered"})
        settings = theme.get_theme_settings(db)

        assert settings["palette"] == "forest"
        assert settings["headerType"] == "centered"
        assert settings["headlineFont"] == "poppins"
        assert settings["sections"] == theme.DEFAULT_SETTINGS["sections"]
        assert db.config.find_one({"_id": "theme"})["palette"] == "forest"

    def test_empty_sections_fall_back_to_defaults(self, db):
        theme.update_theme_settings(db, {"sections": []})
        assert theme.get_theme_settings(db)["sections"] == theme.DEFAULT_SETTINGS["sections"]

    def test_database_errors_return_defaults(self):
        broken_db = MagicMock()
        broken_db.__getitem__.return_value.find_one.side_effect = PyMongoError("down")
        assert theme.get_theme_settings(broken_db) == theme.DEFAULT_SETTINGS


class TestPagesAndPalettes:
    def test_find_page_by_slug(self):
        settings = {"pages": [{"id": "p1", "name": "About", "path": "/about", "sections": []}]}
        assert theme.find_page(settings, "about")["id"] == "p1"
        assert theme.find_page(settings, "/about/")["id"] == "p1"
        assert theme.find_page(settings, "contact") is None

    def test_get_palette(self):
        assert theme.get_palette("Forest")["primary"] == "#2E7D32"
        assert theme.get_palette("unknown")["name"] == "Default"
        assert theme.get_palette(None)["name"] == "Default"
