_extenders = {}


def extenders() -> dict:
    """Currently registered extender classes by adapter name"""
    return _extenders


def register(adapter: str, extender_class):
    """Registers the extender class implementing the given database adapter."""
    _extenders[adapter] = extender_class
    return extender_class


def register_extender(adapter: str):
    def decorator(extender_class):
        return register(adapter, extender_class)
    return decorator


def get_extender_class(adapter: str):
    try:
        return _extenders[adapter]
    except KeyError:
        raise ValueError(
            f'no connection extender registered for adapter {adapter}, '
            f'available: {sorted(_extenders)}'
        ) from None
