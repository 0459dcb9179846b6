from carteirinhas.models import Template, TemplateField
from carteirinhas.validation import validate_template


def test_scenario_template_is_valid(scenario_template):
    result = validate_template(scenario_template)
    assert result.is_valid
    assert result.errors == []


def test_unlocked_back_photo_is_reported(scenario_template):
    scenario_template.fields[1] = scenario_template.fields[1].model_copy(update={"locked": False})
    result = validate_template(scenario_template)
    assert not result.is_valid
    assert "Photo field on the back side must be locked" in result.errors


def test_two_photo_fields(scenario_template):
    scenario_template.fields.append(
        TemplateField(id="field-3", name="Outra foto", type="photo", side="front",
                      x=10, y=10, width=50, height=50, locked=True)
    )
    result = validate_template(scenario_template)
    assert not result.is_valid
    assert result.errors == ["Template must have at most one photo field"]


def test_empty_template_reports_every_fault():
    result = validate_template(Template(front_image_url="", width=0, height=600))
    assert not result.is_valid
    assert "Template dimensions must be greater than 0" in result.errors
    assert "Template must have a front image" in result.errors
    assert "Template must have at least one field" in result.errors
    assert "Template must have at least one text field" in result.errors


def test_geometry_and_name_faults(scenario_template):
    scenario_template.fields += [
        TemplateField(id="a", name="Fora", type="text", x=700, y=0, width=200, height=30),
        TemplateField(id="b", name="Negativo", type="text", x=-5, y=10, width=40, height=0),
        TemplateField(id="c", name="  ", type="text", x=0, y=0, width=40, height=40),
    ]
    errors = validate_template(scenario_template).errors
    assert 'Field "Fora" is outside the template bounds' in errors
    assert 'Field "Negativo" has invalid coordinates' in errors
    assert "Field without a name found" in errors


def test_duplicate_ids(scenario_template):
    scenario_template.fields.append(scenario_template.fields[0].model_copy(update={"y": 300}))
    result = validate_template(scenario_template)
    assert result.errors == ["Field ids must be unique"]


def test_field_exactly_on_the_edge_is_inside(scenario_template):
    scenario_template.fields[0] = scenario_template.fields[0].model_copy(update={"x": 600, "y": 570})
    assert validate_template(scenario_template).is_valid
