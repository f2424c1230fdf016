__app_name__ = "listings-app"
__version__ = "0.3.0"
