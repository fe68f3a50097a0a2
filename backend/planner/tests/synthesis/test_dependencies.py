import uuid

from planner import crud
from planner.models import GameSystemCreate
from planner.synthesis.dependencies import add_dependency


def _system(session, project, slug):
    return crud.create_system(
        session=session,
        system_in=GameSystemCreate(project_id=project.id, system_slug=slug, name=slug.title()),
    )


def test_add_dependency_defaults_type(session, project):
    combat = _system(session, project, "combat")
    health = _system(session, project, "health")

    result = add_dependency(session, combat.id, health.id, description="deals damage")

    assert result.success
    assert result.data.dependency_type == "requires"
    assert result.data.description == "deals damage"
    assert len(crud.find_dependencies(session, project.id)) == 1


def test_self_edge_is_rejected(session, project):
    combat = _system(session, project, "combat")

    result = add_dependency(session, combat.id, combat.id)

    assert result.code == "VALIDATION"


def test_missing_system_is_not_found(session, project):
    combat = _system(session, project, "combat")

    assert add_dependency(session, combat.id, uuid.uuid4()).code == "NOT_FOUND"


def test_cross_project_edge_is_rejected(session, project, other_project):
    combat = _system(session, project, "combat")
    crops = _system(session, other_project, "crops")

    assert add_dependency(session, combat.id, crops.id).code == "VALIDATION"


def test_duplicate_edge_conflicts_but_other_type_is_allowed(session, project):
    combat = _system(session, project, "combat")
    health = _system(session, project, "health")
    assert add_dependency(session, combat.id, health.id, "requires").success

    duplicate = add_dependency(session, combat.id, health.id, "requires")
    other_type = add_dependency(session, combat.id, health.id, "triggers")

    assert duplicate.code == "CONFLICT"
    assert other_type.success


def test_cycles_are_allowed(session, project):
    combat = _system(session, project, "combat")
    health = _system(session, project, "health")

    assert add_dependency(session, combat.id, health.id).success
    assert add_dependency(session, health.id, combat.id).success
