def mask_value(value: str) -> str:
    """Mask an identifier before it reaches the logs.

    Provider references keep their type prefix (``pm_``, ``acct_``) and last
    four characters so operators can still correlate them.
    """
    if not isinstance(value, str):
        return value
    if "@" in value:  # email
        name, _, domain = value.partition("@")
        return (name[:2] + "***@" + domain) if name else "***@" + domain
    prefix, sep, rest = value.partition("_")
    if sep and rest and len(prefix) <= 6:
        return prefix + "_***" + rest[-4:]
    if len(value) > 12:
        return value[:4] + "..." + value[-4:]
    return "***"
