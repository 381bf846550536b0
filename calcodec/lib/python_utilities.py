def to_normal_str(text):
    """
    Make sure we return a normal string with unix line endings, no
    matter if bytes or str was given.  A leading byte order mark is
    dropped.
    """
    if text is None:
        return text
    if not isinstance(text, str):
        text = text.decode("utf-8-sig")
    elif text.startswith("\ufeff"):
        text = text[1:]
    text = text.replace("\r\n", "\n")
    return text


def normalize_newlines(text):
    """Mixed \\r\\n, \\r and \\n line endings are all turned into \\n"""
    if text is None:
        return text
    return text.replace("\r\n", "\n").replace("\r", "\n")
