import json
import logging
import os
from fnmatch import fnmatch

"""
Codec settings from a config file.

The file is JSON (or YAML, if pyyaml is installed) holding a dict of
sections.  A section may "inherit" another one, and "meta"-sections may
"contains" a list of other sections.  Keys in a section may carry a
"calcodec_" prefix, i.e. {"default": {"calcodec_timezone": "Europe/Oslo"}}
works as well as {"default": {"timezone": "Europe/Oslo"}}.
"""

## Keys of a section passed on to CalendarCodec
CODEC_KEYS = (
    "prodid",
    "agent",
    "timezone",
    "attach_uri",
    "memory_budget",
    "forward_exceptions",
)


def expand_config_section(config, section="default", blacklist=None):
    """
    In the "normal" case, will return [ section ]

    We allow:

    * * includes all sections in config file
    * "Meta"-sections in the config file with the keyword "contains" followed by a list of section names
    * Recursive "meta"-sections
    * Glob patterns (work_* for all sections starting with work_)
    * Glob patterns in "meta"-sections
    """
    if section == "*":
        return [x for x in config if not config[x].get("disable", False)]

    ## If it's not a glob-pattern ...
    if set(section).isdisjoint(set("[*?")):
        ## If it's referring to a "meta section" with the "contains" keyword
        if "contains" in config.get(section, {}):
            results = []
            if not blacklist:
                blacklist = set()
            blacklist.add(section)
            for subsection in config[section]["contains"]:
                if subsection not in results and subsection not in blacklist:
                    for recursivesubsection in expand_config_section(
                        config, subsection, blacklist
                    ):
                        if recursivesubsection not in results:
                            results.append(recursivesubsection)
            return results
        else:
            ## Disabled sections should be ignored
            if config.get(section, {}).get("disable", False):
                return []
            return [section]

    ## section name is a glob pattern
    matching_sections = [x for x in config if fnmatch(x, section)]
    results = []
    for s in matching_sections:
        if set(s).isdisjoint(set("[*?")):
            for found in expand_config_section(config, s):
                if found not in results:
                    results.append(found)
        elif s not in results:
            ## Section names shouldn't contain []?* ... but in case they do ... don't recurse
            results.append(s)
    return results


def config_section(config, section="default"):
    if section in config and "inherits" in config[section]:
        ret = config_section(config, config[section]["inherits"])
    else:
        ret = {}
    if section in config:
        ret.update(config[section])
    return ret


def read_config(fn):
    if not fn:
        cfgdir = f"{os.environ.get('HOME', '/')}/.config/"
        for config_file in (
            f"{cfgdir}/calcodec/calendar.conf",
            f"{cfgdir}/calcodec/calendar.yaml",
            f"{cfgdir}/calcodec/calendar.json",
            f"{cfgdir}/calendar.conf",
            "/etc/calcodec/calendar.conf",
        ):
            cfg = read_config(config_file)
            if cfg:
                return cfg
        return None

    try:
        try:
            with open(fn, "rb") as config_file:
                return json.load(config_file)
        except json.decoder.JSONDecodeError:
            ## Late import, yaml is an optional dependency
            try:
                import yaml

                try:
                    with open(fn, "rb") as config_file:
                        return yaml.load(config_file, yaml.SafeLoader)
                except yaml.YAMLError:
                    logging.error(
                        f"config file {fn} exists but is neither valid json nor yaml.  Check the syntax."
                    )
            except ImportError:
                logging.error(
                    f"config file {fn} exists but is not valid json, and pyyaml is not installed."
                )

    except FileNotFoundError:
        logging.info("no config file found")
    except ValueError:
        logging.error(f"error in config file {fn}.  It will be ignored", exc_info=True)
    return {}


def codec_options(config, section="default"):
    """
    Keyword arguments for CalendarCodec from a config section.  For
    meta-sections and glob patterns, the first matching section is used.
    """
    if not config:
        return {}
    sections = expand_config_section(config, section)
    if not sections:
        return {}
    ret = {}
    for key, value in config_section(config, sections[0]).items():
        if key.startswith("calcodec_"):
            key = key[len("calcodec_") :]
        if key in CODEC_KEYS:
            ret[key] = value
        elif key not in ("inherits", "contains", "disable"):
            logging.debug(f"ignoring unknown config key {key}")
    if "memory_budget" in ret and ret["memory_budget"] is not None:
        ret["memory_budget"] = int(ret["memory_budget"])
    return ret
