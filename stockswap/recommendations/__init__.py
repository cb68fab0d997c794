"""
Local recommendation rules used when upstream services cannot answer.

Modules
-------
fallback      : KeywordRule table + fallback_suggestion() + fallback_projection()
                — pure functions, no I/O.
ticker_parser : rejection-rule compilation + parse_ticker_reply() for raw
                text-generation replies.
"""
