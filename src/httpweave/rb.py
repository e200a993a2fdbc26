"""
Shorthand request builders

    from httpweave import rb
    session.send(rb.get("http://example.com").accept("text/html")())

The ``*_enc`` variants percent-encode the URL path and query.
"""

from httpweave._builder import RequestBuilder


def get(url):
    return RequestBuilder().get(url)


def get_enc(url):
    return RequestBuilder().get(url, encode=True)


def head(url):
    return RequestBuilder().head(url)


def head_enc(url):
    return RequestBuilder().head(url, encode=True)


def post(url):
    return RequestBuilder().post(url)


def post_enc(url):
    return RequestBuilder().post(url, encode=True)


def put(url):
    return RequestBuilder().put(url)


def put_enc(url):
    return RequestBuilder().put(url, encode=True)


def delete(url):
    return RequestBuilder().delete(url)


def delete_enc(url):
    return RequestBuilder().delete(url, encode=True)


def patch(url):
    return RequestBuilder().patch(url)


def patch_enc(url):
    return RequestBuilder().patch(url, encode=True)
