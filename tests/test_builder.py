import base64
import io
import json
import tarfile

import pytest

from imagebuilder.builder import Configs, encode_auth, encode_auth_config, new_client
from imagebuilder.docker_api.exceptions import BuildError, StreamError
from imagebuilder.settings_manager import SettingsManager


def _decode(value):
    return json.loads(base64.urlsafe_b64decode(value.encode('ascii')))


def test_encode_auth_omits_empty_fields():
    assert encode_auth({'username': '', 'password': ''}) == 'e30='
    assert _decode(encode_auth({'username': 'u', 'password': 'p'})) == {'username': 'u', 'password': 'p'}


def test_encode_auth_config():
    encoded = encode_auth_config({'registry.example.com': {'username': 'u', 'password': ''}})
    assert _decode(encoded) == {'registry.example.com': {'username': 'u'}}


def test_new_client_precomputes_registry_auth(fake_daemon):
    builder = new_client(Configs(host=fake_daemon.base_url, registry='127.0.0.1', user='u', passwd='p'))

    assert _decode(builder.registry_auth_string) == {'username': 'u', 'password': 'p'}
    assert builder.registry_auth_map == {'127.0.0.1': {'username': 'u', 'password': 'p'}}
    assert builder.no_cache and builder.force_rm and builder.pull_parent


def test_build_sends_context_and_options(fake_daemon, build_context):
    fake_daemon.add_stream('POST', '/v1.23/build', [
        {'stream': 'Step 1/2 : FROM busybox\n'},
        {'stream': 'Successfully built 0123abcd\n'},
    ])
    builder = new_client(Configs(host=fake_daemon.base_url, registry='127.0.0.1', user='u', passwd='p'))

    image_id = builder.build(str(build_context), '127.0.0.1/public/build-test:master', {'VERSION': '1'})

    assert image_id == '0123abcd'
    request = fake_daemon.last
    query = request['query']
    assert query['t'] == ['127.0.0.1/public/build-test:master']
    assert query['dockerfile'] == ['Dockerfile']
    assert query['nocache'] == ['true']
    assert query['rm'] == ['true']
    assert query['forcerm'] == ['true']
    assert query['pull'] == ['true']
    assert json.loads(query['buildargs'][0]) == {'VERSION': '1'}
    assert _decode(request['headers']['X-Registry-Config']) == {
        '127.0.0.1': {'username': 'u', 'password': 'p'}
    }

    with tarfile.open(fileobj=io.BytesIO(request['body']), mode='r') as tar:
        assert sorted(tar.getnames()) == ['Dockerfile', 'app.py']


def test_build_without_registry_sends_no_auth_config(fake_daemon, build_context):
    fake_daemon.add_stream('POST', '/build', [{'aux': {'ID': 'sha256:feed'}}])
    builder = new_client(Configs(host=fake_daemon.base_url, api_version=None, no_cache=False))

    assert builder.build(str(build_context), 'app') == 'sha256:feed'
    assert 'X-Registry-Config' not in fake_daemon.last['headers']
    assert fake_daemon.last['query']['nocache'] == ['false']
    assert 'buildargs' not in fake_daemon.last['query']


def test_build_error_is_surfaced(fake_daemon, build_context):
    fake_daemon.add_stream('POST', '/build', [{'error': 'failed to parse Dockerfile'}])
    builder = new_client(Configs(host=fake_daemon.base_url, api_version=None))

    with pytest.raises(StreamError):
        builder.build(str(build_context), 'app')


def test_build_without_dockerfile_never_contacts_daemon(fake_daemon, tmp_path):
    builder = new_client(Configs(host=fake_daemon.base_url, api_version=None))

    with pytest.raises(BuildError):
        builder.build(str(tmp_path), 'app')

    assert fake_daemon.requests == []


def test_push_uses_credentials_and_pull_does_not(fake_daemon):
    fake_daemon.add_stream('POST', '/images/127.0.0.1/public/app/push', [{'status': 'Pushed'}])
    fake_daemon.add_stream('POST', '/images/create', [{'status': 'Downloaded'}])
    builder = new_client(Configs(host=fake_daemon.base_url, api_version=None, registry='127.0.0.1', user='u', passwd='p'))

    builder.push('127.0.0.1/public/app:master')
    push_request = fake_daemon.last
    builder.pull('127.0.0.1/public/app:master')
    pull_request = fake_daemon.last

    assert _decode(push_request['headers']['X-Registry-Auth']) == {'username': 'u', 'password': 'p'}
    assert push_request['query'] == {'tag': ['master']}
    assert 'X-Registry-Auth' not in pull_request['headers']
    assert pull_request['query'] == {'fromImage': ['127.0.0.1/public/app'], 'tag': ['master']}


def test_list_tag_and_rmi(fake_daemon):
    fake_daemon.add('GET', '/v1.23/images/json', body=[{'Id': 'sha256:aaa', 'RepoTags': ['ubuntu:16.04']}])
    fake_daemon.add('POST', '/v1.23/images/ubuntu:16.04/tag', status=201)
    fake_daemon.add('DELETE', '/v1.23/images/newrepohost.com/ubuntu:7', body=[{'Untagged': 'newrepohost.com/ubuntu:7'}])
    builder = new_client(Configs(host=fake_daemon.base_url))

    images = builder.list({'reference': 'ubuntu'})
    builder.tag('ubuntu:16.04', 'newrepohost.com/ubuntu:7')
    builder.rmi('newrepohost.com/ubuntu:7')

    assert images[0].repo_tags == ['ubuntu:16.04']
    assert [(r['method'], r['path']) for r in fake_daemon.requests] == [
        ('GET', '/v1.23/images/json'),
        ('POST', '/v1.23/images/ubuntu:16.04/tag'),
        ('DELETE', '/v1.23/images/newrepohost.com/ubuntu:7'),
    ]


def test_configs_from_settings(tmp_path, monkeypatch):
    settings_file = tmp_path / 'settings.json'
    settings_file.write_text(json.dumps({
        'registry': 'registry.example.com',
        'registry_user': 'builder',
        'no_cache': False,
    }))
    monkeypatch.setenv('DOCKER_REGISTRY_PASSWORD', 'secret')

    cfg = Configs.from_settings(SettingsManager(str(settings_file)))

    assert cfg.registry == 'registry.example.com'
    assert cfg.user == 'builder'
    assert cfg.passwd == 'secret'
    assert cfg.no_cache is False
    assert cfg.force_rm is True
    assert cfg.api_version == '1.23'
    assert cfg.host == ''


def test_operations_log_start_and_success(fake_daemon, caplog):
    fake_daemon.add('GET', '/images/json', body=[{'Id': 'sha256:aaa'}])
    fake_daemon.add('POST', '/images/ubuntu/tag', status=201)
    fake_daemon.add('DELETE', '/images/mirror/ubuntu:1', body=[])
    builder = new_client(Configs(host=fake_daemon.base_url, api_version=None))
    caplog.set_level('INFO', logger='imagebuilder.builder')

    builder.list({'reference': 'ubuntu'})
    builder.tag('ubuntu', 'mirror/ubuntu:1')
    builder.rmi('mirror/ubuntu:1')

    assert caplog.messages == [
        "Listing images (filters: {'reference': 'ubuntu'})",
        'Found 1 images',
        'Tagging image ubuntu as mirror/ubuntu:1',
        'Image tagged: ubuntu -> mirror/ubuntu:1',
        'Removing image mirror/ubuntu:1',
        'Image removed: mirror/ubuntu:1',
    ]
