from weblogin.controllers.auth import controller as auth_controller
from weblogin.controllers.home import controller as home_controller

CONTROLLERS = [home_controller, auth_controller]

__all__ = ["CONTROLLERS", "auth_controller", "home_controller"]
