import json

import requests


HEADERS = [
    'Ubicación de picking', 'Cambiar pick', 'Filtrar', 'Colocar', 'Artículo', 'Descripción',
    'P.p. caj.', 'P.p. ud.', 'Disp. caj.', 'Disp. ud.', 'Stock Atarfe', 'Un/Caja', 'Un/Pallet',
    'Peso caj.', 'Dias Vida Util Almacen', 'Aecoc', 'Tipo', 'Estado del producto', 'Codigo de Promocion',
]


def gviz_text(payload: dict) -> str:
    return "/*O_o*/\ngoogle.visualization.Query.setResponse(" + json.dumps(payload) + ");"


def gviz_table(labels, rows) -> dict:
    return {
        'version': '0.6',
        'status': 'ok',
        'table': {
            'cols': [{'id': chr(65 + i), 'label': lbl, 'type': 'string'} for i, lbl in enumerate(labels)],
            'rows': [{'c': cells} for cells in rows],
        },
    }


def inventory_row(location, article, description, status='Artículo en alta comercial', tipo='SECO',
                  per_case=12, per_pallet=480):
    values = {
        'Ubicación de picking': location,
        'Artículo': article,
        'Descripción': description,
        'Un/Caja': per_case,
        'Un/Pallet': per_pallet,
        'Aecoc': '8410000',
        'Tipo': tipo,
        'Estado del producto': status,
    }
    return [({'v': values[h]} if values.get(h) is not None else None) for h in HEADERS]


def record(location='', article_id='', description='', **extra):
    return {'location': location, 'article_id': article_id, 'description': description, **extra}


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200):
        self.content = text.encode('utf-8')
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")
