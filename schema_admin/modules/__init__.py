from schema_admin.modules.audits import AuditsController
from schema_admin.modules.users import UsersController
from schema_admin.services.module_registry import module_registry

module_registry.register(UsersController)
module_registry.register(AuditsController)

__all__ = ["AuditsController", "UsersController"]
