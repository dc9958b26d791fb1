from importlib import import_module

modules = [
    'statuses',
    'requests',
    'analyses',
    'wigs',
    'donations',
    'notifications',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
