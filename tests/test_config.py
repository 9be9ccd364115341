import config


def test_parse_path_setting_splits_on_separator():
    assert config.parse_path_setting("Making > Experiments") == ("Making", "Experiments")
    assert config.parse_path_setting(" Interests>Bicycles ") == ("Interests", "Bicycles")


def test_parse_path_setting_empty_values():
    assert config.parse_path_setting(None) == ()
    assert config.parse_path_setting("") == ()
    assert config.parse_path_setting(" > ") == ()
