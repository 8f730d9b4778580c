"""
Tests for the package surface.

Copyright (c) 2024 Cleansheet LLC
License: CC BY 4.0
"""

import consultation_pad


class TestPackage:
    """Tests for the top-level exports."""

    def test_usage_names_exported(self):
        for name in ("ConsultationSession", "load_config", "load_consultation"):
            assert name in consultation_pad.__all__
            assert hasattr(consultation_pad, name)

    def test_docstring_usage_imports_what_it_calls(self):
        doc = consultation_pad.__doc__

        assert "import ConsultationSession, load_config, load_consultation" in doc
        assert "load_consultation(" in doc

    def test_docstring_carries_license(self):
        assert "Author: Cleansheet LLC" in consultation_pad.__doc__
        assert "License: CC BY 4.0" in consultation_pad.__doc__
