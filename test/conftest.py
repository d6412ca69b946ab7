#!/usr/bin/env python3

# It's the pytest way, pylint: disable=redefined-outer-name

# standards
from io import StringIO
import logging
from random import randrange
from threading import Thread
import time

# 3rd parties
from flask import Flask, Response as FlaskResponse, jsonify, request
import pytest
from werkzeug.serving import make_server  # installed transitively by Flask

# relais
from relais import LOGGER, basic_logging_config
import relais.features.retry


basic_logging_config(level='DEBUG')


def flask_app():
    # Yeah, we don't call these directly, but they still need names, pylint: disable=unused-variable
    app = Flask('relais-tests')

    @app.route('/hello')
    def hello():
        return 'hello'

    @app.route('/echo', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
    def echo():
        return jsonify({
            'method': request.method,
            'args': request.args.to_dict(flat=False),
            'files': {
                key: storage.read().decode('UTF-8')
                for key, storage in request.files.items()
            },
            'form': request.form.to_dict(flat=False),
            'json': request.get_json(silent=True),
            'headers': {key.lower(): value for key, value in request.headers.items()},
        })

    @app.route('/status/<int:code>')
    def status(code):
        if code == 204:
            return '', 204
        return jsonify({'status': code}), code

    @app.route('/delay')
    def delay():
        time.sleep(int(request.args.get('ms', '500')) / 1000)
        return 'done'

    @app.route('/bytes/<int:size>')
    def send_bytes(size):
        num_chunks = int(request.args.get('chunks', '1'))
        chunk_size = max(1, size // num_chunks)
        data = bytes(i % 256 for i in range(size))

        def generate():
            for pos in range(0, size, chunk_size):
                yield data[pos : pos + chunk_size]

        headers = {} if request.args.get('unknown-length') else {'Content-Length': str(size)}
        return FlaskResponse(generate(), mimetype='application/octet-stream', headers=headers)

    @app.route('/no-content-type')
    def no_content_type():
        res = FlaskResponse('mystery')
        del res.headers['Content-Type']
        return res

    @app.route('/upload', methods=['POST', 'PUT'])
    def upload():
        return jsonify({'size': len(request.get_data())})

    @app.route('/events')
    def events():
        def generate():
            yield ': this is a comment\n\n'
            yield 'data: {"count": 1}\n\n'
            yield 'event: ping\ndata: not for the listeners\n\n'
            yield 'data: plain text\n\n'
            yield 'data: {"count": 2}\n\n'
            time.sleep(0.5)

        return FlaskResponse(generate(), mimetype='text/event-stream')

    return app


@pytest.fixture(scope='session')
def server():
    app = flask_app()
    port = randrange(5000, 50000)
    server = make_server('127.0.0.1', port, app, threaded=True)  # pylint: disable=redefined-outer-name
    app.app_context().push()
    thread = Thread(target=server.serve_forever)
    thread.start()
    try:
        yield f'http://127.0.0.1:{port}'
    finally:
        server.shutdown()
        thread.join()


@pytest.fixture
def mocked_sleep_on_retry(mocker):
    mocker.patch('relais.features.retry.sleep')
    return relais.features.retry.sleep


@pytest.fixture
def captured_logs():
    handler = logging.StreamHandler(StringIO())
    original_handlers = LOGGER.handlers
    LOGGER.handlers = [handler]

    def getvalue():
        value = handler.stream.getvalue()
        handler.stream = StringIO()
        logging.debug('Captured logs: %r', value)
        return value
    yield getvalue

    LOGGER.handlers = original_handlers


def pytest_collection_modifyitems(items):
    for item in items:
        # always applied, whether or not the tests want it
        item.fixturenames.append('mocked_sleep_on_retry')
