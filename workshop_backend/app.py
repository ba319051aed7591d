# module workshop_backend.app
from workshop_backend.app_setup.factory import create_app

# App globale
app = create_app()
