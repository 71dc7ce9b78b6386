import logging
import pickle
import sqlite3

from flask import Flask, request

app = Flask(__name__)
logger = logging.getLogger(__name__)


@app.route('/users')
def find_user():
    name = request.args.get('name')
    conn = sqlite3.connect('app.db')
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM users WHERE name = '" + name + "'")
    return str(cursor.fetchall())


@app.route('/users/safe')
def find_user_safe():
    name = request.args.get('name')
    conn = sqlite3.connect('app.db')
    conn.execute("SELECT * FROM users WHERE name = ?", (name,))
    return 'ok'


@app.route('/session', methods=['POST'])
def load_session():
    blob = request.get_data()
    return pickle.loads(blob)


def _login(user, password):
    logger.info("login attempt for %s with %s", user, password)
