import pytest
from sqlalchemy.orm import Session

from schema_admin.models import Module, User
from schema_admin.modules import AuditsController, UsersController
from schema_admin.services.module_controller import ModuleController
from schema_admin.services.module_errors import ConfigurationError, UnknownModuleError
from schema_admin.services.module_registry import (
    ModuleNotRegisteredError,
    ModuleRegistry,
    module_registry,
    verify_module_schema,
    verify_registered_modules,
)
from schema_admin.services.module_state import MemoryModuleStateStore
from schema_admin.services.schema_builders import FormSchemaBuilder, TableSchemaBuilder


class MissingTableController(ModuleController):
    module_link = "ghosts"
    table_name = "ghosts"

    @classmethod
    def define_table(cls, builder: TableSchemaBuilder) -> None:
        builder.column("id")


class MissingColumnController(ModuleController):
    module_link = "nicknames"
    table_name = "users"

    @classmethod
    def define_table(cls, builder: TableSchemaBuilder) -> None:
        builder.column("id")
        builder.column("nickname")


class MissingFormFieldController(ModuleController):
    module_link = "profiles"
    table_name = "users"

    @classmethod
    def define_table(cls, builder: TableSchemaBuilder) -> None:
        builder.column("id")
        builder.column("full_name", "Name", "first_name || ' ' || surname")

    @classmethod
    def define_form(cls, builder: FormSchemaBuilder) -> None:
        builder.field("nickname")


class MissingJoinController(ModuleController):
    module_link = "joined"
    table_name = "audits"

    @classmethod
    def define_table(cls, builder: TableSchemaBuilder) -> None:
        builder.join("LEFT JOIN teams ON teams.id = audits.user_id")
        builder.column("id")


def test_bundled_modules_match_the_database(db_session: Session) -> None:
    bind = db_session.connection()

    verify_module_schema(bind, UsersController)
    verify_module_schema(bind, AuditsController)
    verify_registered_modules(bind, module_registry)


@pytest.mark.parametrize(
    "controller_cls",
    [MissingTableController, MissingColumnController, MissingFormFieldController, MissingJoinController],
)
def test_schema_mismatches_fail_fast(db_session: Session, controller_cls) -> None:
    with pytest.raises(ConfigurationError):
        verify_module_schema(db_session.connection(), controller_cls)


def test_bundled_modules_are_registered() -> None:
    assert module_registry.controller_class("users") is UsersController
    assert module_registry.controller_class("audits") is AuditsController

    with pytest.raises(ModuleNotRegisteredError):
        module_registry.controller_class("ghosts")


def test_register_rejects_conflicting_links() -> None:
    registry = ModuleRegistry()
    registry.register(UsersController)
    registry.register(UsersController)

    class OtherUsersController(UsersController):
        pass

    with pytest.raises(ConfigurationError):
        registry.register(OtherUsersController)
    assert registry.links() == ["users"]


def test_require_module_needs_an_enabled_row(db_session: Session) -> None:
    with pytest.raises(UnknownModuleError):
        module_registry.require_module(db_session, "users")

    db_session.add(Module(link="users", title="Users", enabled=False, item_order=1))
    db_session.commit()
    with pytest.raises(UnknownModuleError):
        module_registry.require_module(db_session, "users")


def test_create_builds_controller_for_enabled_module(db_session: Session, admin_user: User, modules) -> None:
    controller = module_registry.create(
        db_session,
        "audits",
        session_id="session-a",
        user=admin_user,
        state_store=MemoryModuleStateStore(),
    )

    assert isinstance(controller, AuditsController)
    assert controller.module is not None
    assert controller.module_title() == "Audits"


def test_modules_for_respects_grants(
    db_session: Session, admin_user: User, standard_user: User, modules, grant
) -> None:
    db_session.add(Module(link="unregistered", title="Orphan", enabled=True, item_order=0))
    db_session.commit()
    grant(standard_user, modules["audits"])

    assert [module.link for module in module_registry.modules_for(db_session, admin_user)] == ["users", "audits"]
    assert [module.link for module in module_registry.modules_for(db_session, standard_user)] == ["audits"]
    assert module_registry.modules_for(db_session, None) == []
