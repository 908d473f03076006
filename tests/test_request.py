#!/usr/bin/env python3
"""
Tests for the Request facade
"""
import unittest

from kora.core.transport import SocketInfo

from helpers import make_request, request


class RequestHeaderTests(unittest.TestCase):
    def test_header_returns_transport_headers(self):
        req = request()
        self.assertIs(req.header, req.req.headers)

    def test_header_can_be_replaced(self):
        req = request()
        req.header = {'X-Custom-Headerfield': 'Its one header, with headerfields'}
        self.assertEqual(req.header, req.req.headers)
        self.assertEqual(req.headers, {'X-Custom-Headerfield': 'Its one header, with headerfields'})

    def test_get_is_case_insensitive(self):
        req = request(make_request(headers={'content-type': 'text/plain'}))
        self.assertEqual(req.get('Content-Type'), 'text/plain')
        self.assertEqual(req.get('CONTENT-TYPE'), 'text/plain')

    def test_get_after_mixed_case_replacement(self):
        req = request()
        req.header = {'X-Custom': 'value'}
        self.assertEqual(req.get('x-custom'), 'value')

    def test_get_missing_returns_empty_string(self):
        self.assertEqual(request().get('X-Missing'), '')

    def test_referer_aliases(self):
        req = request(make_request(headers={'referer': 'http://example.com/'}))
        self.assertEqual(req.get('Referrer'), 'http://example.com/')
        self.assertEqual(req.get('Referer'), 'http://example.com/')

        req = request(make_request(headers={'referrer': 'http://example.org/'}))
        self.assertEqual(req.get('referer'), 'http://example.org/')


class RequestTypeTests(unittest.TestCase):
    def test_type_without_parameters(self):
        req = request(make_request(headers={'content-type': 'text/html; charset=utf-8'}))
        self.assertEqual(req.type, 'text/html')

    def test_type_missing(self):
        self.assertEqual(request().type, '')

    def test_type_is_normalized(self):
        req = request(make_request(headers={'content-type': ' Text/HTML ; charset=utf-8'}))
        self.assertEqual(req.type, 'text/html')

    def test_charset(self):
        req = request(make_request(headers={'content-type': 'text/plain; charset="UTF-8"'}))
        self.assertEqual(req.charset, 'utf-8')
        self.assertEqual(request().charset, '')

    def test_length(self):
        self.assertIsNone(request().length)
        self.assertEqual(request(make_request(headers={'content-length': '42'})).length, 42)
        self.assertIsNone(request(make_request(headers={'content-length': 'abc'})).length)

    def test_is_without_body(self):
        req = request(make_request(headers={'content-type': 'application/json'}))
        self.assertIsNone(req.is_('json'))

    def test_is_with_body(self):
        req = request(make_request(headers={
            'content-type': 'application/json; charset=utf-8',
            'content-length': '7',
        }))
        self.assertEqual(req.is_(), 'application/json')
        self.assertEqual(req.is_('json'), 'json')
        self.assertEqual(req.is_('html', 'json'), 'json')
        self.assertEqual(req.is_(['html', 'json']), 'json')
        self.assertEqual(req.is_('application/*'), 'application/json')
        self.assertEqual(req.is_('application/json'), 'application/json')
        self.assertIs(req.is_('html'), False)

    def test_is_suffix_and_chunked(self):
        req = request(make_request(headers={
            'content-type': 'application/vnd.api+json',
            'transfer-encoding': 'chunked',
        }))
        self.assertEqual(req.is_('+json'), 'application/vnd.api+json')
        self.assertIs(req.is_('text/*'), False)

    def test_is_urlencoded_and_multipart(self):
        req = request(make_request(headers={
            'content-type': 'application/x-www-form-urlencoded',
            'content-length': '3',
        }))
        self.assertEqual(req.is_('urlencoded'), 'urlencoded')

        req = request(make_request(headers={
            'content-type': 'multipart/form-data; boundary=x',
            'content-length': '3',
        }))
        self.assertEqual(req.is_('multipart'), 'multipart')
        self.assertEqual(req.is_('multipart/*'), 'multipart/form-data')


class RequestURLTests(unittest.TestCase):
    def test_method(self):
        req = request(make_request(method='POST'))
        self.assertEqual(req.method, 'POST')
        req.method = 'PUT'
        self.assertEqual(req.req.method, 'PUT')

    def test_path_and_querystring(self):
        req = request(make_request(url='/users/1?page=2'))
        self.assertEqual(req.path, '/users/1')
        self.assertEqual(req.querystring, 'page=2')
        self.assertEqual(req.search, '?page=2')

    def test_set_path_keeps_query(self):
        req = request(make_request(url='/login?next=/'))
        req.path = '/logout'
        self.assertEqual(req.url, '/logout?next=/')

    def test_set_querystring_and_search(self):
        req = request(make_request(url='/store/shoes'))
        req.querystring = 'page=2&color=blue'
        self.assertEqual(req.url, '/store/shoes?page=2&color=blue')
        req.search = '?size=9'
        self.assertEqual(req.url, '/store/shoes?size=9')
        self.assertEqual(req.querystring, 'size=9')

    def test_empty_search(self):
        self.assertEqual(request(make_request(url='/')).search, '')

    def test_query(self):
        req = request(make_request(url='/?page=2&tag=a&tag=b&empty='))
        self.assertEqual(req.query, {'page': '2', 'tag': ['a', 'b'], 'empty': ''})
        self.assertIs(req.query, req.query)

    def test_set_query(self):
        req = request(make_request(url='/store'))
        req.query = {'page': 2, 'tag': ['a', 'b']}
        self.assertEqual(req.url, '/store?page=2&tag=a&tag=b')
        self.assertEqual(req.query, {'page': '2', 'tag': ['a', 'b']})

    def test_origin_and_href(self):
        req = request(make_request(url='/users?x=1', headers={'host': 'example.com'}))
        self.assertEqual(req.origin, 'http://example.com')
        self.assertEqual(req.href, 'http://example.com/users?x=1')

    def test_href_absolute_url(self):
        req = request(make_request(url='http://example.com/foo', headers={'host': 'other.com'}))
        self.assertEqual(req.href, 'http://example.com/foo')

    def test_href_uses_original_url(self):
        req = request(make_request(url='/old', headers={'host': 'example.com'}))
        req.url = '/new'
        self.assertEqual(req.href, 'http://example.com/old')

    def test_parsed_url(self):
        req = request(make_request(url='/a?b=c', headers={'host': 'example.com:3000'}))
        self.assertEqual(req.URL.hostname, 'example.com')
        self.assertEqual(req.URL.port, 3000)
        self.assertEqual(req.URL.path, '/a')

    def test_unparsable_url(self):
        req = request(make_request(headers={'host': '[invalid'}))
        self.assertIsNone(req.URL)
        self.assertIsNone(req.URL)

    def test_idempotent(self):
        self.assertTrue(request(make_request(method='GET')).idempotent)
        self.assertFalse(request(make_request(method='POST')).idempotent)

    def test_stream(self):
        req = request(make_request(method='POST', body=b'payload'))
        self.assertEqual(req.stream.read(), b'payload')


class RequestHostTests(unittest.TestCase):
    def test_host(self):
        req = request(make_request(headers={'host': 'foo.com:3000'}))
        self.assertEqual(req.host, 'foo.com:3000')
        self.assertEqual(req.hostname, 'foo.com')

    def test_missing_host(self):
        req = request()
        self.assertEqual(req.host, '')
        self.assertEqual(req.hostname, '')

    def test_ipv6_hostname(self):
        req = request(make_request(headers={'host': '[::1]:3000'}))
        self.assertEqual(req.hostname, '::1')

    def test_forwarded_host_ignored_without_proxy(self):
        req = request(make_request(headers={'host': 'foo.com', 'x-forwarded-host': 'bar.com'}))
        self.assertEqual(req.host, 'foo.com')

    def test_forwarded_host_with_proxy(self):
        req = request(make_request(headers={
            'host': 'foo.com',
            'x-forwarded-host': 'bar.com, baz.com',
        }), proxy=True)
        self.assertEqual(req.host, 'bar.com')

    def test_http2_authority(self):
        req = request(make_request(headers={':authority': 'h2.example.com'}, http_version='2.0'))
        self.assertEqual(req.host, 'h2.example.com')

    def test_protocol(self):
        self.assertEqual(request().protocol, 'http')
        secure = make_request(socket=SocketInfo('10.0.0.1', 5000, encrypted=True))
        self.assertEqual(request(secure).protocol, 'https')
        self.assertTrue(request(secure).secure)

    def test_forwarded_proto(self):
        headers = {'x-forwarded-proto': 'https, http'}
        self.assertEqual(request(make_request(headers=dict(headers))).protocol, 'http')
        req = request(make_request(headers=dict(headers)), proxy=True)
        self.assertEqual(req.protocol, 'https')
        self.assertTrue(req.secure)

    def test_ips(self):
        headers = {'x-forwarded-for': '127.0.0.1, 127.0.0.2, 127.0.0.3'}
        self.assertEqual(request(make_request(headers=dict(headers))).ips, [])
        req = request(make_request(headers=dict(headers)), proxy=True)
        self.assertEqual(req.ips, ['127.0.0.1', '127.0.0.2', '127.0.0.3'])

    def test_ips_with_max_count(self):
        req = request(make_request(headers={'x-forwarded-for': 'a, b, c'}),
                      proxy=True, max_ips_count=2)
        self.assertEqual(req.ips, ['b', 'c'])

    def test_ips_custom_header(self):
        req = request(make_request(headers={'x-client-ip': '10.1.1.1'}),
                      proxy=True, proxy_ip_header='X-Client-IP')
        self.assertEqual(req.ips, ['10.1.1.1'])

    def test_ip(self):
        req = request(make_request(socket=SocketInfo('10.0.0.9', 4000)))
        self.assertEqual(req.ip, '10.0.0.9')
        req.ip = '1.2.3.4'
        self.assertEqual(req.ip, '1.2.3.4')

    def test_ip_from_proxy(self):
        req = request(make_request(headers={'x-forwarded-for': '9.9.9.9, 10.0.0.1'},
                                   socket=SocketInfo('10.0.0.1', 4000)), proxy=True)
        self.assertEqual(req.ip, '9.9.9.9')

    def test_subdomains(self):
        req = request(make_request(headers={'host': 'tobi.ferrets.example.com'}))
        self.assertEqual(req.subdomains, ['ferrets', 'tobi'])

    def test_subdomains_offset(self):
        req = request(make_request(headers={'host': 'tobi.ferrets.example.com'}),
                      subdomain_offset=3)
        self.assertEqual(req.subdomains, ['tobi'])

    def test_subdomains_ip_host(self):
        req = request(make_request(headers={'host': '127.0.0.1:3000'}))
        self.assertEqual(req.subdomains, [])
        self.assertEqual(request().subdomains, [])

    def test_to_json(self):
        req = request(make_request('POST', '/items', {'host': 'a'}))
        self.assertEqual(req.to_json(), {'method': 'POST', 'url': '/items', 'header': {'host': 'a'}})
        self.assertEqual(req.inspect(), req.to_json())


if __name__ == '__main__':
    unittest.main()
