import copy
import io
import json
import pathlib
import zipfile

from config import Settings
from errors import FetchError
from forge import FORGE_MAVEN_URL
from rules import Platform

LINUX = Platform(name='linux', arch='x64', release='6.1.0-generic')

INDEX_URL = Settings().version_manifest_url
PROMOTIONS_URL = f"{FORGE_MAVEN_URL}/net/minecraftforge/forge/promotions.json"
MODERN_MANIFEST_URL = 'https://meta.example.com/1.20.1.json'
LEGACY_MANIFEST_URL = 'https://meta.example.com/1.12.2.json'
ASSET_INDEX_URL = 'https://meta.example.com/indexes/5.json'
FORGE_FULL = '1.12.2-14.23.5.2847'
FORGE_JAR_URL = f"{FORGE_MAVEN_URL}/net/minecraftforge/forge/{FORGE_FULL}/forge-{FORGE_FULL}-universal.jar"


class FakeDownloader:
    """In-memory stand-in for downloads.Downloader."""

    def __init__(self, json_map=None, files=None, posts=None):
        self.json_map = json_map or {}
        self.files = files or {}
        self.posts = posts or {}
        self.json_calls = []
        self.downloads = []
        self.post_calls = []

    async def get_json(self, url):
        self.json_calls.append(url)
        if url not in self.json_map:
            raise FetchError(f"Failed to fetch {url}: 404 Not Found")
        return copy.deepcopy(self.json_map[url])

    async def download(self, url, dest_path, force=False):
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        if not force and dest_path.exists():
            return False
        if url not in self.files:
            raise FetchError(f"Failed to download {url}: 404 Not Found")
        self.downloads.append(url)
        dest_path.write_bytes(self.files[url])
        return True

    async def post_json(self, url, body):
        self.post_calls.append((url, body))
        response = self.posts[url]
        if isinstance(response, list):
            return response.pop(0)
        return response


def make_zip(entries):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as zip_ref:
        for name, data in entries.items():
            if name.endswith('/'):
                zip_ref.writestr(zipfile.ZipInfo(name), b'')
            else:
                zip_ref.writestr(name, data)
    return buffer.getvalue()


def version_index():
    return {
        'latest': {'release': '1.20.1', 'snapshot': '23w31a'},
        'versions': [
            {'id': '23w31a', 'url': 'https://meta.example.com/23w31a.json', 'type': 'snapshot'},
            {'id': '1.20.1', 'url': MODERN_MANIFEST_URL, 'type': 'release'},
            {'id': '1.12.2', 'url': LEGACY_MANIFEST_URL, 'type': 'release'},
        ],
    }


def modern_manifest():
    return {
        'id': '1.20.1',
        'type': 'release',
        'mainClass': 'net.minecraft.client.main.Main',
        'assetIndex': {'id': '5', 'url': ASSET_INDEX_URL},
        'downloads': {
            'client': {'url': 'https://dl.example.com/1.20.1/client.jar'},
            'server': {'url': 'https://dl.example.com/1.20.1/server.jar'},
        },
        'libraries': [
            {
                'name': 'com.example:core:1.0',
                'downloads': {'artifact': {
                    'path': 'com/example/core/1.0/core-1.0.jar',
                    'url': 'https://libs.example.com/core-1.0.jar',
                }},
            },
            {
                'name': 'com.example:mac-only:1.0',
                'rules': [{'action': 'allow', 'os': {'name': 'osx'}}],
                'downloads': {'artifact': {
                    'path': 'com/example/mac-only/1.0/mac-only-1.0.jar',
                    'url': 'https://libs.example.com/mac-only-1.0.jar',
                }},
            },
        ],
        'arguments': {
            'game': [
                '--username', '${auth_player_name}',
                '--version', '${version_name}',
                '--accessToken', '${auth_access_token}',
                {'rules': [{'action': 'allow', 'features': {'is_demo_user': True}}], 'value': '--demo'},
            ],
            'jvm': [
                {'rules': [{'action': 'allow', 'os': {'name': 'osx'}}], 'value': ['-XstartOnFirstThread']},
                {'rules': [{'action': 'allow', 'os': {'name': 'linux'}}], 'value': '-Dos.name.hint=linux'},
                '-Djava.library.path=${natives_directory}',
                '-cp',
                '${classpath}',
            ],
        },
    }


def legacy_manifest():
    return {
        'id': '1.12.2',
        'type': 'release',
        'mainClass': 'net.minecraft.client.main.Main',
        'minecraftArguments': '--username ${auth_player_name} --version ${version_name}',
        'assetIndex': {'id': '5', 'url': ASSET_INDEX_URL},
        'downloads': {
            'client': {'url': 'https://dl.example.com/1.12.2/client.jar'},
            'server': {'url': 'https://dl.example.com/1.12.2/server.jar'},
        },
        'libraries': [
            {
                'name': 'org.lwjgl.lwjgl:lwjgl-platform:2.9.4',
                'natives': {'linux': 'natives-linux', 'windows': 'natives-windows-${arch}'},
                'extract': {'exclude': ['META-INF/']},
                'downloads': {'classifiers': {
                    'natives-linux': {
                        'path': 'org/lwjgl/lwjgl/lwjgl-platform/2.9.4/lwjgl-platform-2.9.4-natives-linux.jar',
                        'url': 'https://libs.example.com/lwjgl-natives-linux.jar',
                    },
                }},
            },
        ],
    }


def asset_index():
    return {'objects': {
        'icons/icon.png': {'hash': 'ab12ef', 'size': 3},
        'sounds/click.ogg': {'hash': 'cd34ef', 'size': 3},
        'icons/copy.png': {'hash': 'ab12ef', 'size': 3},
    }}


def forge_version_json():
    return {
        'mainClass': 'net.minecraft.launchwrapper.Launch',
        'minecraftArguments': '--username ${auth_player_name} --tweakClass net.minecraftforge.fml.common.launcher.FMLTweaker',
        'libraries': [
            {'name': 'net.minecraft:launchwrapper:1.12', 'clientreq': True, 'serverreq': True},
            {'name': 'org.ow2.asm:asm-all:5.2', 'url': 'https://maven.example.com/', 'clientreq': True},
            {'name': 'com.example:server-only:1.0', 'serverreq': True},
            {'name': f"net.minecraftforge:forge:{FORGE_FULL}"},
        ],
    }


def game_downloader(posts=None):
    """A FakeDownloader serving the whole fake game and Forge catalogue."""
    json_map = {
        INDEX_URL: version_index(),
        MODERN_MANIFEST_URL: modern_manifest(),
        LEGACY_MANIFEST_URL: legacy_manifest(),
        ASSET_INDEX_URL: asset_index(),
        PROMOTIONS_URL: {'promos': {
            'recommended': {'mcversion': '1.12.2', 'version': '14.23.5.2847'},
            '1.12.2-latest': {'mcversion': '1.12.2', 'version': '14.23.5.2855'},
        }},
    }
    natives_jar = make_zip({
        'META-INF/': b'',
        'META-INF/MANIFEST.MF': b'Manifest-Version: 1.0',
        'liblwjgl.so': b'ELF',
        'linux/': b'',
        'linux/libopenal.so': b'ELF',
    })
    files = {
        'https://libs.example.com/core-1.0.jar': b'core',
        'https://libs.example.com/mac-only-1.0.jar': b'mac',
        'https://libs.example.com/lwjgl-natives-linux.jar': natives_jar,
        'https://dl.example.com/1.20.1/client.jar': b'client-1.20.1',
        'https://dl.example.com/1.20.1/server.jar': b'server-1.20.1',
        'https://dl.example.com/1.12.2/client.jar': b'client-1.12.2',
        'https://dl.example.com/1.12.2/server.jar': b'server-1.12.2',
        'https://resources.download.minecraft.net/ab/ab12ef': b'png',
        'https://resources.download.minecraft.net/cd/cd34ef': b'ogg',
        FORGE_JAR_URL: make_zip({'version.json': json.dumps(forge_version_json()).encode('utf-8')}),
        'https://libraries.minecraft.net/net/minecraft/launchwrapper/1.12/launchwrapper-1.12.jar': b'lw',
        'https://maven.example.com/org/ow2/asm/asm-all/5.2/asm-all-5.2.jar': b'asm',
        'https://libraries.minecraft.net/com/example/server-only/1.0/server-only-1.0.jar': b'srv',
    }
    return FakeDownloader(json_map=json_map, files=files, posts=posts)


def read_json(path: pathlib.Path):
    return json.loads(path.read_text(encoding='utf-8'))
