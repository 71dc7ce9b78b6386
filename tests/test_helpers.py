from utils.helpers import detect_language, get_files_by_language, get_line_content, read_file_content


def test_detect_language():
    assert detect_language('src/Account.cls') == 'apex'
    assert detect_language('app/views.py') == 'python'
    assert detect_language('Main.java') == 'java'
    assert detect_language('README.md') is None


def test_files_are_sorted_and_vendor_dirs_skipped(tmp_path):
    (tmp_path / 'b.py').write_text('', encoding='utf-8')
    (tmp_path / 'a.cls').write_text('', encoding='utf-8')
    for skipped in ('venv', '.git', '__pycache__'):
        (tmp_path / skipped).mkdir()
        (tmp_path / skipped / 'x.py').write_text('', encoding='utf-8')

    names = [p.rsplit('/', 1)[-1] for p in get_files_by_language(str(tmp_path))]

    assert names == ['a.cls', 'b.py']
    assert get_files_by_language(str(tmp_path), 'apex')[0].endswith('a.cls')
    assert get_files_by_language(str(tmp_path / 'b.py'), 'apex') == []


def test_read_file_content_falls_back_to_other_encodings(tmp_path):
    path = tmp_path / 'latin.py'
    path.write_bytes('name = "caf\xe9"\n'.encode('latin-1'))

    assert 'caf' in read_file_content(str(path))


def test_get_line_content(tmp_path):
    path = tmp_path / 'f.py'
    path.write_text('a\nb\nc\nd\n', encoding='utf-8')

    result = get_line_content(str(path), 2, 1)

    assert result['line'] == 'b'
    assert [c['line_number'] for c in result['context']] == [1, 2, 3]
    assert get_line_content(str(path), 99)['context'] == []
    assert get_line_content(str(tmp_path / 'missing.py'), 1)['line'] == ''
